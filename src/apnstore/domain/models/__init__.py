from .apn import (
    ApnRecord,
    EditProvenance,
    OwnedBy,
    UNIQUE_FIELDS,
    UNIQUE_FIELD_DEFAULTS,
)
from .query import AnyOf, ApnFilter, Condition, Op, OrderBy, SortOrder, order_by

__all__ = [
    "AnyOf",
    "ApnFilter",
    "ApnRecord",
    "Condition",
    "EditProvenance",
    "Op",
    "OrderBy",
    "OwnedBy",
    "SortOrder",
    "UNIQUE_FIELDS",
    "UNIQUE_FIELD_DEFAULTS",
    "order_by",
]
