"""Recovery for an unreadable carriers database.

This module provides graded recovery strategies so a corrupted file does
not keep the engine from starting.  Seed rows are reconstructed by the
engine after a reset, so only rows carrying a user or carrier action are
worth salvaging.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, List

from ..config import CARRIERS_TABLE, SQLITE_TIMEOUT_SEC
from ..domain.models.apn import ID, REQUIRED_SEED_FIELDS
from ..utils.logging import get_logger

logger = get_logger()


class RecoveryService:
    """Handles database corruption recovery with graded strategies.

    The recovery process follows a graduated approach:
    1. REINDEX: Attempt to rebuild indexes without data loss
    2. Salvage: Extract readable rows before rebuilding
    3. Force Reset: Delete and recreate the database
    """

    def __init__(
        self,
        db_path: Path,
        init_schema_fn: Callable[[sqlite3.Connection], None],
        insert_rows_fn: Callable[[sqlite3.Connection, List[Dict[str, Any]]], None],
    ):
        """Initialize the recovery service.

        Args:
            db_path: Path to the database file.
            init_schema_fn: Callback that creates the carriers table.
            insert_rows_fn: Callback inserting salvaged rows.
        """
        self.db_path = db_path
        self._init_schema = init_schema_fn
        self._insert_rows = insert_rows_fn

    def recover(self) -> bool:
        """Attempt graded recovery from a corrupted database.

        Returns:
            True when the existing file was repaired in place, False when it
            was reset and needs reseeding.
        """
        if self._try_reindex():
            return True

        salvaged_rows = self._salvage_rows()
        if salvaged_rows:
            logger.info("Salvaged %d rows from corrupted database", len(salvaged_rows))
        else:
            logger.info("No salvageable rows found; rebuilding fresh database")

        self._force_reset()

        try:
            conn = sqlite3.connect(str(self.db_path), timeout=SQLITE_TIMEOUT_SEC)
            try:
                with conn:
                    self._init_schema(conn)
                    if salvaged_rows:
                        self._insert_rows(conn, salvaged_rows)
            finally:
                conn.close()
            logger.info("Rebuilt carriers database at %s", self.db_path)
        except sqlite3.DatabaseError as exc:
            logger.error("Failed to rebuild carriers database at %s: %s", self.db_path, exc)
            raise
        return False

    def _try_reindex(self) -> bool:
        try:
            logger.info("Attempting REINDEX for %s", self.db_path)
            conn = sqlite3.connect(str(self.db_path), timeout=SQLITE_TIMEOUT_SEC)
            try:
                conn.execute("REINDEX;")
                result = conn.execute("PRAGMA integrity_check").fetchone()
            finally:
                conn.close()
            if result is None or result[0] != "ok":
                logger.warning("Integrity check failed for %s", self.db_path)
                return False
            logger.info("REINDEX succeeded for %s", self.db_path)
            return True
        except sqlite3.DatabaseError as exc:
            logger.warning("REINDEX failed for %s: %s", self.db_path, exc)
            return False

    def _salvage_rows(self) -> List[Dict[str, Any]]:
        """Extract readable edited rows from a corrupted database."""
        salvaged_rows: List[Dict[str, Any]] = []
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=SQLITE_TIMEOUT_SEC)
        except sqlite3.DatabaseError as exc:
            logger.warning("Failed to open corrupted DB for salvage: %s", exc)
            return salvaged_rows
        try:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(f"SELECT * FROM {CARRIERS_TABLE}")
            for row in cursor:
                row_dict = {key: row[key] for key in row.keys() if key != ID}
                if any(not row_dict.get(name) for name in REQUIRED_SEED_FIELDS):
                    logger.warning("Skipping salvaged row missing its operator: %s", row_dict)
                    continue
                if not row_dict.get("edited"):
                    continue
                salvaged_rows.append(row_dict)
        except sqlite3.DatabaseError as exc:
            logger.warning("Encountered error while scanning for salvage: %s", exc)
        finally:
            conn.close()
        return salvaged_rows

    def _force_reset(self) -> None:
        """Delete the database and its WAL and shared memory files."""
        paths = [
            self.db_path,
            Path(str(self.db_path) + "-wal"),
            Path(str(self.db_path) + "-shm"),
            Path(str(self.db_path) + "-journal"),
        ]
        for p in paths:
            try:
                if p.exists():
                    p.unlink()
                    logger.info("Deleted corrupted database file %s", p)
            except OSError as exc:
                logger.warning("Failed to delete %s: %s", p, exc)
