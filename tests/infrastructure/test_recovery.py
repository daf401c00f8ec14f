"""Tests for recovery of an unreadable carriers database."""

import sqlite3

from apnstore.engine import _insert_salvaged
from apnstore.store.recovery import RecoveryService
from apnstore.store.schema import create_carriers_table


def _service(path):
    return RecoveryService(path, create_carriers_table, _insert_salvaged)


def test_healthy_database_is_repaired_in_place(tmp_path) -> None:
    path = tmp_path / "carriers.db"
    conn = sqlite3.connect(str(path))
    create_carriers_table(conn)
    conn.execute("INSERT INTO carriers (numeric, mcc, mnc, apn) VALUES ('310260', '310', '260', 'a')")
    conn.commit()
    conn.close()

    assert _service(path).recover() is True

    conn = sqlite3.connect(str(path))
    assert conn.execute("SELECT COUNT(*) FROM carriers").fetchone()[0] == 1
    conn.close()


def test_garbage_file_is_reset(tmp_path) -> None:
    path = tmp_path / "carriers.db"
    path.write_bytes(b"this is not a database" * 100)

    assert _service(path).recover() is False

    conn = sqlite3.connect(str(path))
    assert conn.execute("SELECT COUNT(*) FROM carriers").fetchone()[0] == 0
    conn.close()


def test_salvage_keeps_only_edited_rows(tmp_path) -> None:
    path = tmp_path / "carriers.db"
    conn = sqlite3.connect(str(path))
    create_carriers_table(conn)
    conn.executemany(
        "INSERT INTO carriers (numeric, mcc, mnc, apn, edited) VALUES (?, ?, ?, ?, ?)",
        [
            ("310260", "310", "260", "seeded", 0),
            ("310260", "310", "260", "mine", 1),
            ("", "", "", "orphan", 1),
        ],
    )
    conn.commit()
    conn.close()

    rows = _service(path)._salvage_rows()
    assert [row["apn"] for row in rows] == ["mine"]
    assert "_id" not in rows[0]
