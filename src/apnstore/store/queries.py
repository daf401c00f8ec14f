"""SQL construction for the carriers repository.

Every column name that reaches a statement is checked against the column
catalogue first; values always travel as bound parameters.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..domain.models.apn import ensure_known_fields
from ..domain.models.query import AnyOf, ApnFilter, Condition, Op, OrderBy


class OnConflict(str, Enum):
    """SQLite conflict clause used by an INSERT or UPDATE."""

    ABORT = "ABORT"
    REPLACE = "REPLACE"
    IGNORE = "IGNORE"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


class QueryBuilder:
    """Builds parameterized SQL for filters, projections and writes."""

    @staticmethod
    def build_filter_clauses(
        filter_params: Optional[ApnFilter],
    ) -> Tuple[List[str], List[Any]]:
        """Build WHERE clauses and parameters from an :class:`ApnFilter`.

        Returns:
            Tuple of (where_clauses, params) for use in SQL queries.

        Raises:
            InvalidFieldError: If a clause names an unknown column.
        """
        where_clauses: List[str] = []
        params: List[Any] = []
        if filter_params is None:
            return where_clauses, params

        for clause in filter_params.clauses:
            if isinstance(clause, AnyOf):
                sql, clause_params = QueryBuilder._compile_any_of(clause)
            else:
                sql, clause_params = QueryBuilder._compile_condition(clause)
            where_clauses.append(sql)
            params.extend(clause_params)
        return where_clauses, params

    @staticmethod
    def _compile_condition(condition: Condition) -> Tuple[str, List[Any]]:
        ensure_known_fields([condition.field])
        column = condition.field
        op = condition.op
        if op is Op.IS_NULL or op is Op.NOT_NULL:
            return f"{column} {op.value}", []
        if op is Op.IN or op is Op.NOT_IN:
            values = [_plain(v) for v in condition.value]
            if not values:
                # Empty IN never matches; empty NOT IN always does.
                return ("0" if op is Op.IN else "1"), []
            placeholders = ", ".join("?" for _ in values)
            return f"{column} {op.value} ({placeholders})", values
        if condition.value is None:
            if op is Op.EQ:
                return f"{column} IS NULL", []
            if op is Op.NE:
                return f"{column} IS NOT NULL", []
        return f"{column} {op.value} ?", [_plain(condition.value)]

    @staticmethod
    def _compile_any_of(group: AnyOf) -> Tuple[str, List[Any]]:
        parts: List[str] = []
        params: List[Any] = []
        for option in group.options:
            clauses, option_params = QueryBuilder.build_filter_clauses(option)
            parts.append("(" + (" AND ".join(clauses) if clauses else "1") + ")")
            params.extend(option_params)
        if not parts:
            return "0", []
        return "(" + " OR ".join(parts) + ")", params

    @staticmethod
    def build_where(filter_params: Optional[ApnFilter]) -> Tuple[str, List[Any]]:
        clauses, params = QueryBuilder.build_filter_clauses(filter_params)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    @staticmethod
    def build_projection(projection: Optional[Sequence[str]]) -> str:
        if not projection:
            return "*"
        ensure_known_fields(projection)
        return ", ".join(projection)

    @staticmethod
    def build_order(order: Optional[Iterable[OrderBy]]) -> str:
        if not order:
            return ""
        parts = []
        for item in order:
            ensure_known_fields([item.column])
            parts.append(f"{item.column} {item.order.value}")
        return " ORDER BY " + ", ".join(parts)

    @staticmethod
    def build_select(
        table: str,
        filter_params: Optional[ApnFilter] = None,
        projection: Optional[Sequence[str]] = None,
        order: Optional[Iterable[OrderBy]] = None,
        limit: Optional[int] = None,
    ) -> Tuple[str, List[Any]]:
        where, params = QueryBuilder.build_where(filter_params)
        sql = f"SELECT {QueryBuilder.build_projection(projection)} FROM {table}{where}"
        sql += QueryBuilder.build_order(order)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return sql, params

    @staticmethod
    def build_insert(
        table: str,
        values: Mapping[str, Any],
        on_conflict: OnConflict = OnConflict.ABORT,
    ) -> Tuple[str, List[Any]]:
        ensure_known_fields(values.keys())
        prefix = "INSERT" if on_conflict is OnConflict.ABORT else f"INSERT OR {on_conflict.value}"
        if not values:
            return f"{prefix} INTO {table} DEFAULT VALUES", []
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        params = [_plain(v) for v in values.values()]
        return f"{prefix} INTO {table} ({columns}) VALUES ({placeholders})", params

    @staticmethod
    def build_update(
        table: str,
        values: Mapping[str, Any],
        filter_params: Optional[ApnFilter] = None,
        on_conflict: OnConflict = OnConflict.ABORT,
    ) -> Tuple[str, List[Any]]:
        ensure_known_fields(values.keys())
        prefix = "UPDATE" if on_conflict is OnConflict.ABORT else f"UPDATE OR {on_conflict.value}"
        assignments = ", ".join(f"{column} = ?" for column in values)
        params = [_plain(v) for v in values.values()]
        where, where_params = QueryBuilder.build_where(filter_params)
        return f"{prefix} {table} SET {assignments}{where}", params + where_params

    @staticmethod
    def build_delete(table: str, filter_params: Optional[ApnFilter] = None) -> Tuple[str, List[Any]]:
        where, params = QueryBuilder.build_where(filter_params)
        return f"DELETE FROM {table}{where}", params

    @staticmethod
    def build_count(table: str, filter_params: Optional[ApnFilter] = None) -> Tuple[str, List[Any]]:
        where, params = QueryBuilder.build_where(filter_params)
        return f"SELECT COUNT(*) FROM {table}{where}", params


__all__ = ["OnConflict", "QueryBuilder"]
