"""Table definitions and catalogue helpers for the carriers table."""
from __future__ import annotations

import sqlite3
from typing import Set

from ..config import CARRIERS_TABLE
from ..domain.models.apn import COLUMNS, UNIQUE_FIELDS
from ..utils.logging import get_logger

logger = get_logger()


def create_table_sql(table_name: str = CARRIERS_TABLE) -> str:
    """Return the CREATE TABLE statement for the current carriers layout.

    Uniqueness collisions drive the merge code, so every column listed in
    the UNIQUE clause is one where both the user-edited row and a new seed
    definition are accepted side by side.
    """
    columns = ", ".join(column.ddl for column in COLUMNS)
    unique = ", ".join(UNIQUE_FIELDS)
    return f"CREATE TABLE {table_name} ({columns}, UNIQUE ({unique}))"


def create_carriers_table(conn: sqlite3.Connection, table_name: str = CARRIERS_TABLE) -> None:
    logger.debug("Creating table %s", table_name)
    conn.execute(create_table_sql(table_name))


def table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table_name,),
    ).fetchone()
    return row is not None


def existing_columns(conn: sqlite3.Connection, table_name: str = CARRIERS_TABLE) -> Set[str]:
    cursor = conn.execute(f"PRAGMA table_info({table_name})")
    return {row[1] for row in cursor}


def get_user_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def set_user_version(conn: sqlite3.Connection, version: int) -> None:
    # PRAGMA does not accept bound parameters.
    conn.execute(f"PRAGMA user_version = {int(version)}")


__all__ = [
    "create_carriers_table",
    "create_table_sql",
    "existing_columns",
    "get_user_version",
    "set_user_version",
    "table_exists",
]
