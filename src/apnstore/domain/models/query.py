from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple, Union


class SortOrder(Enum):
    ASC = "ASC"
    DESC = "DESC"


class Op(Enum):
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    NOT_NULL = "IS NOT NULL"


@dataclass(frozen=True)
class Condition:
    """A single ``field <op> value`` test."""

    field: str
    op: Op
    value: Any = None


@dataclass(frozen=True)
class AnyOf:
    """A group of filters of which at least one must hold."""

    options: Tuple["ApnFilter", ...]


Clause = Union[Condition, AnyOf]


@dataclass
class ApnFilter:
    """Fluent predicate over carriers columns; clauses are ANDed together."""

    clauses: List[Clause] = field(default_factory=list)

    def where(self, field_name: str, value: Any) -> "ApnFilter":
        self.clauses.append(Condition(field_name, Op.EQ, value))
        return self

    def where_not(self, field_name: str, value: Any) -> "ApnFilter":
        self.clauses.append(Condition(field_name, Op.NE, value))
        return self

    def where_op(self, field_name: str, op: Op, value: Any = None) -> "ApnFilter":
        self.clauses.append(Condition(field_name, op, value))
        return self

    def where_in(self, field_name: str, values: Iterable[Any]) -> "ApnFilter":
        self.clauses.append(Condition(field_name, Op.IN, tuple(values)))
        return self

    def where_not_in(self, field_name: str, values: Iterable[Any]) -> "ApnFilter":
        self.clauses.append(Condition(field_name, Op.NOT_IN, tuple(values)))
        return self

    def any_of(self, *options: "ApnFilter") -> "ApnFilter":
        self.clauses.append(AnyOf(tuple(options)))
        return self

    def and_(self, other: Optional["ApnFilter"]) -> "ApnFilter":
        """Return a new filter holding the clauses of both filters."""
        combined = ApnFilter(list(self.clauses))
        if other is not None:
            combined.clauses.extend(other.clauses)
        return combined

    @classmethod
    def by_id(cls, row_id: int) -> "ApnFilter":
        return cls().where("_id", row_id)


@dataclass(frozen=True)
class OrderBy:
    column: str
    order: SortOrder = SortOrder.ASC


def order_by(*columns: Union[str, Tuple[str, SortOrder], OrderBy]) -> List[OrderBy]:
    """Build an ordering list from names, ``(name, order)`` pairs or OrderBy."""

    result: List[OrderBy] = []
    for column in columns:
        if isinstance(column, OrderBy):
            result.append(column)
        elif isinstance(column, tuple):
            result.append(OrderBy(column[0], column[1]))
        else:
            result.append(OrderBy(column))
    return result
