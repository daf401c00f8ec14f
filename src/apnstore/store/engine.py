"""Low-level database connection and transaction management.

This module owns the single SQLite connection used by the carriers store,
its PRAGMA settings, and the transaction context manager every write path
goes through.
"""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from ..config import SQLITE_TIMEOUT_SEC
from ..utils.logging import get_logger

logger = get_logger()


class DatabaseManager:
    """Manages the SQLite connection and transactions.

    The connection is opened lazily, kept open until :meth:`close`, and runs
    in autocommit mode so that :meth:`transaction` controls ``BEGIN`` and
    ``COMMIT`` explicitly.  Schema changes (``ALTER``/``DROP``/``RENAME``)
    issued inside a transaction roll back with it.
    """

    def __init__(self, db_path: Union[Path, str], timeout: float = SQLITE_TIMEOUT_SEC):
        """Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file, or ``":memory:"``.
            timeout: Seconds to wait on a locked database.
        """
        self.db_path = db_path
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection.

        Returns:
            An open SQLite connection whose rows are :class:`sqlite3.Row`.
        """
        if self._conn is None:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            self._conn = conn
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for transactional operations.

        Warning:
            Nested transactions are NOT truly supported. When this context
            manager is entered while a transaction is already active, it
            yields the existing connection WITHOUT creating a savepoint:

            - The nested block has NO separate transaction semantics
            - Errors in the nested block do NOT trigger a partial rollback
            - Only the outermost transaction controls commit/rollback behavior

        Yields:
            A database connection within a transaction context.

        Example:
            >>> with db_manager.transaction() as conn:
            ...     conn.execute("INSERT INTO carriers ...")
            ...     conn.execute("UPDATE carriers ...")
        """
        conn = self.get_connection()
        if self._depth:
            # Nested: shares the outer transaction's fate.
            self._depth += 1
            try:
                yield conn
            finally:
                self._depth -= 1
            return

        conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
        finally:
            self._depth = 0

    def close(self) -> None:
        """Close the connection if one is open."""
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None
                self._depth = 0
