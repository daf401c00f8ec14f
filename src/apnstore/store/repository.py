"""Repository interface for the carriers table.

This module provides the CRUD operations every higher layer writes
through.  It knows nothing about provenance rules or merging; it turns
unique-constraint violations into :class:`ConflictError` carrying the
colliding row so callers can decide what to do.
"""
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config import CARRIERS_TABLE
from ..domain.models.apn import (
    ID,
    REQUIRED_SEED_FIELDS,
    UNIQUE_FIELDS,
    ApnRecord,
    normalize_values,
    unique_key_values,
)
from ..domain.models.query import ApnFilter, OrderBy
from ..errors import ConflictError, DatabaseError, WriteFailedError
from ..utils.logging import get_logger
from .engine import DatabaseManager
from .queries import OnConflict, QueryBuilder

logger = get_logger()


def _row_to_dict(db_row: sqlite3.Row) -> Dict[str, Any]:
    return {key: db_row[key] for key in db_row.keys()}


class ApnRepository:
    """CRUD access to one carriers table.

    The same class serves the live table and the temporary table used by a
    rebuild migration; *table* selects which.
    """

    def __init__(self, db: DatabaseManager, table: str = CARRIERS_TABLE):
        """Initialize the repository.

        Args:
            db: The database manager owning the connection.
            table: The table name rows are read from and written to.
        """
        self._db = db
        self.table = table

    @property
    def db(self) -> DatabaseManager:
        return self._db

    def transaction(self):
        """Context manager for batching multiple operations.

        Example:
            >>> with repo.transaction():
            ...     repo.insert({...})
            ...     repo.delete(ApnFilter().where("edited", 0))
        """
        return self._db.transaction()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert(
        self,
        values: Mapping[str, Any],
        on_conflict: OnConflict = OnConflict.ABORT,
    ) -> Optional[int]:
        """Insert one row and return its id.

        Absent and ``None`` values fall back to the column defaults.

        Returns:
            The new row id, or ``None`` when ``IGNORE`` skipped the row.

        Raises:
            ConflictError: With ``ABORT``, when the unique fields collide.
            WriteFailedError: When SQLite rejects the row for another reason.
        """
        row = {k: v for k, v in normalize_values(values).items() if v is not None and k != ID}
        sql, params = QueryBuilder.build_insert(self.table, row, on_conflict)
        try:
            with self.transaction() as conn:
                cursor = conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            existing = self.select_conflicting_row(row)
            if existing is None:
                raise WriteFailedError(f"Insert into {self.table} failed: {exc}") from exc
            raise ConflictError(f"Insert collides with row {existing[ID]}", existing) from exc
        except sqlite3.Error as exc:
            raise WriteFailedError(f"Insert into {self.table} failed: {exc}") from exc
        if on_conflict is OnConflict.IGNORE and cursor.rowcount == 0:
            return None
        return cursor.lastrowid

    def insert_or_replace(self, values: Mapping[str, Any]) -> Optional[int]:
        return self.insert(values, OnConflict.REPLACE)

    def update(
        self,
        filter_params: Optional[ApnFilter],
        values: Mapping[str, Any],
        on_conflict: OnConflict = OnConflict.ABORT,
    ) -> int:
        """Update matching rows and return how many changed.

        Raises:
            ConflictError: With ``ABORT``, when an updated row would collide
                with another row; ``row_id`` names the row being updated.
        """
        row = {k: v for k, v in normalize_values(values).items() if k != ID}
        if not row:
            return 0
        sql, params = QueryBuilder.build_update(self.table, row, filter_params, on_conflict)
        try:
            with self.transaction() as conn:
                cursor = conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            raise self._update_conflict(filter_params, row, exc) from exc
        except sqlite3.Error as exc:
            raise WriteFailedError(f"Update of {self.table} failed: {exc}") from exc
        return cursor.rowcount

    def update_row(
        self,
        row_id: int,
        values: Mapping[str, Any],
        on_conflict: OnConflict = OnConflict.ABORT,
    ) -> int:
        return self.update(ApnFilter.by_id(row_id), values, on_conflict)

    def _update_conflict(
        self,
        filter_params: Optional[ApnFilter],
        values: Mapping[str, Any],
        exc: sqlite3.IntegrityError,
    ) -> Exception:
        for current in self.query(filter_params):
            candidate = dict(current)
            candidate.update(values)
            existing = self.select_conflicting_row(candidate, exclude_id=current[ID])
            if existing is not None:
                return ConflictError(
                    f"Update of row {current[ID]} collides with row {existing[ID]}",
                    existing,
                    row_id=current[ID],
                )
        return WriteFailedError(f"Update of {self.table} failed: {exc}")

    def delete(self, filter_params: Optional[ApnFilter] = None) -> int:
        sql, params = QueryBuilder.build_delete(self.table, filter_params)
        try:
            with self.transaction() as conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise WriteFailedError(f"Delete from {self.table} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def query(
        self,
        filter_params: Optional[ApnFilter] = None,
        projection: Optional[Sequence[str]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching rows as column dictionaries.

        Args:
            filter_params: Predicate over columns; ``None`` matches every row.
            projection: Columns to return; ``None`` returns all of them.
            order: Sort keys applied in sequence.
            limit: Maximum number of rows.
        """
        sql, params = QueryBuilder.build_select(self.table, filter_params, projection, order, limit)
        conn = self._db.get_connection()
        try:
            cursor = conn.execute(sql, params)
            return [_row_to_dict(row) for row in cursor]
        except sqlite3.Error as exc:
            raise DatabaseError(f"Query on {self.table} failed: {exc}") from exc

    def get(self, row_id: int) -> Optional[Dict[str, Any]]:
        rows = self.query(ApnFilter.by_id(row_id))
        return rows[0] if rows else None

    def records(self, filter_params: Optional[ApnFilter] = None) -> List[ApnRecord]:
        return [ApnRecord.from_row(row) for row in self.query(filter_params)]

    def count(self, filter_params: Optional[ApnFilter] = None) -> int:
        sql, params = QueryBuilder.build_count(self.table, filter_params)
        conn = self._db.get_connection()
        return int(conn.execute(sql, params).fetchone()[0])

    def find_ids_by_unique_key(
        self,
        key: Mapping[str, Any],
        extra: Optional[ApnFilter] = None,
    ) -> List[int]:
        """Return ids of rows whose unique fields equal *key* exactly.

        *extra* narrows the match further, e.g. to rows not marked deleted.
        """
        full_key = unique_key_values(key)
        filter_params = ApnFilter().and_(extra)
        for name in UNIQUE_FIELDS:
            filter_params.where(name, full_key[name])
        return [row[ID] for row in self.query(filter_params, projection=[ID])]

    def select_conflicting_row(
        self,
        values: Mapping[str, Any],
        exclude_id: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the one row sharing *values*' unique fields, if any.

        Absent unique fields are compared against their defaults.  ``None``
        is returned when a required field is missing or when the lookup
        does not find exactly one row.
        """
        missing = [name for name in REQUIRED_SEED_FIELDS if not values.get(name)]
        if missing:
            logger.error("Cannot look up conflicting row, missing %s", ", ".join(missing))
            return None

        full_key = unique_key_values(values)
        filter_params = ApnFilter()
        for name in UNIQUE_FIELDS:
            filter_params.where(name, full_key[name])
        if exclude_id is not None:
            filter_params.where_not(ID, exclude_id)
        rows = self.query(filter_params)
        if len(rows) == 1:
            return rows[0]
        logger.error("Expected one conflicting row in %s, found %d", self.table, len(rows))
        return None


__all__ = ["ApnRepository"]
