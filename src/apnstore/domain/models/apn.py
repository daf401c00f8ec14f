"""APN record model: column catalogue, provenance and ownership enums.

The carriers table is described once here and every other layer (DDL,
value normalisation, conflict lookup, migration projections, preferred-APN
snapshots) derives from :data:`COLUMNS` and :data:`UNIQUE_FIELD_DEFAULTS`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ...config import (
    DEFAULT_PROTOCOL,
    DEFAULT_ROAMING_PROTOCOL,
    INVALID_SUBSCRIPTION_ID,
    NO_APN_SET_ID,
    UNKNOWN_CARRIER_ID,
)
from ...errors import InvalidFieldError

ID = "_id"


class EditProvenance(IntEnum):
    """Who last touched a row, persisted in the ``edited`` column."""

    UNEDITED = 0
    USER_EDITED = 1
    USER_DELETED = 2
    USER_DELETED_BUT_PRESENT_IN_XML = 3
    CARRIER_EDITED = 4
    CARRIER_DELETED = 5
    CARRIER_DELETED_BUT_PRESENT_IN_XML = 6

    @property
    def is_deleted(self) -> bool:
        return self in _DELETED_STATES

    @property
    def is_protected(self) -> bool:
        """True when the row reflects a user or carrier action."""
        return self is not EditProvenance.UNEDITED


_DELETED_STATES = frozenset(
    {
        EditProvenance.USER_DELETED,
        EditProvenance.USER_DELETED_BUT_PRESENT_IN_XML,
        EditProvenance.CARRIER_DELETED,
        EditProvenance.CARRIER_DELETED_BUT_PRESENT_IN_XML,
    }
)
DELETED_STATES: Tuple[EditProvenance, ...] = tuple(sorted(_DELETED_STATES))


class OwnedBy(IntEnum):
    DPC = 0
    OTHERS = 1


class ColumnKind(str, Enum):
    TEXT = "TEXT"
    INTEGER = "INTEGER"
    BOOLEAN = "BOOLEAN"


@dataclass(frozen=True)
class Column:
    name: str
    kind: ColumnKind
    default: Any = None

    @property
    def ddl(self) -> str:
        if self.name == ID:
            return f"{ID} INTEGER PRIMARY KEY"
        if self.default is None:
            return f"{self.name} {self.kind.value}"
        if self.kind is ColumnKind.TEXT:
            literal = "'" + str(self.default).replace("'", "''") + "'"
        else:
            literal = str(int(self.default))
        return f"{self.name} {self.kind.value} DEFAULT {literal}"


_T, _I, _B = ColumnKind.TEXT, ColumnKind.INTEGER, ColumnKind.BOOLEAN

COLUMNS: Tuple[Column, ...] = (
    Column(ID, _I),
    Column("name", _T, ""),
    Column("numeric", _T, ""),
    Column("mcc", _T, ""),
    Column("mnc", _T, ""),
    Column("carrier_id", _I, UNKNOWN_CARRIER_ID),
    Column("apn", _T, ""),
    Column("user", _T, ""),
    Column("server", _T, ""),
    Column("password", _T, ""),
    Column("proxy", _T, ""),
    Column("port", _T, ""),
    Column("mmsproxy", _T, ""),
    Column("mmsport", _T, ""),
    Column("mmsc", _T, ""),
    Column("authtype", _I, -1),
    Column("type", _T, ""),
    Column("current", _I),
    Column("protocol", _T, DEFAULT_PROTOCOL),
    Column("roaming_protocol", _T, DEFAULT_ROAMING_PROTOCOL),
    Column("carrier_enabled", _B, 1),
    Column("bearer", _I, 0),
    Column("bearer_bitmask", _I, 0),
    Column("network_type_bitmask", _I, 0),
    Column("mvno_type", _T, ""),
    Column("mvno_match_data", _T, ""),
    Column("sub_id", _I, INVALID_SUBSCRIPTION_ID),
    Column("profile_id", _I, 0),
    Column("modem_cognitive", _B, 0),
    Column("max_conns", _I, 0),
    Column("wait_time", _I, 0),
    Column("max_conns_time", _I, 0),
    Column("mtu", _I, 0),
    Column("edited", _I, int(EditProvenance.UNEDITED)),
    Column("user_visible", _B, 1),
    Column("user_editable", _B, 1),
    Column("owned_by", _I, int(OwnedBy.OTHERS)),
    Column("apn_set_id", _I, NO_APN_SET_ID),
)

COLUMNS_BY_NAME: Dict[str, Column] = {column.name: column for column in COLUMNS}
COLUMN_NAMES: Tuple[str, ...] = tuple(column.name for column in COLUMNS)
DATA_COLUMNS: Tuple[str, ...] = tuple(name for name in COLUMN_NAMES if name != ID)

# Order matters: it is the order of the UNIQUE clause and of the preferred
# APN snapshot.  Columns outside this list never trigger a merge.
UNIQUE_FIELD_DEFAULTS: Dict[str, Any] = {
    "numeric": "",
    "mcc": "",
    "mnc": "",
    "apn": "",
    "proxy": "",
    "port": "",
    "mmsproxy": "",
    "mmsport": "",
    "mmsc": "",
    "carrier_enabled": 1,
    "bearer": 0,
    "mvno_type": "",
    "mvno_match_data": "",
    "profile_id": 0,
    "protocol": DEFAULT_PROTOCOL,
    "roaming_protocol": DEFAULT_ROAMING_PROTOCOL,
    "user_editable": 1,
    "owned_by": int(OwnedBy.OTHERS),
    "apn_set_id": NO_APN_SET_ID,
    "carrier_id": UNKNOWN_CARRIER_ID,
}
UNIQUE_FIELDS: Tuple[str, ...] = tuple(UNIQUE_FIELD_DEFAULTS)

BOOLEAN_FIELDS = frozenset(c.name for c in COLUMNS if c.kind is ColumnKind.BOOLEAN)

# Fields a seed candidate must carry; everything else has a default.
REQUIRED_SEED_FIELDS: Tuple[str, ...] = ("numeric", "mcc", "mnc")

_WHITESPACE = re.compile(r"\s+")


def to_int_bool(value: Any) -> int:
    """Convert ``"true"``/``"false"``/``1``/``0``/bools to ``1`` or ``0``."""

    if isinstance(value, str):
        stripped = value.strip()
        return 0 if stripped == "0" or stripped.lower() == "false" else 1
    return 1 if value else 0


def split_types(value: Optional[str]) -> List[str]:
    """Split a comma separated purpose list, dropping surrounding blanks."""

    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def ensure_known_fields(names: Iterable[str]) -> None:
    unknown = sorted(name for name in names if name not in COLUMNS_BY_NAME)
    if unknown:
        raise InvalidFieldError(f"Unknown carriers column(s): {', '.join(unknown)}")


def normalize_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate column names and coerce values to their stored form.

    Boolean columns become ``1``/``0``, enum members become plain ints and
    blanks are stripped from the purpose list.  Absent keys stay absent so
    partial updates keep prior values.
    """

    ensure_known_fields(values.keys())
    normalized: Dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        if value is not None and key in BOOLEAN_FIELDS:
            value = to_int_bool(value)
        elif key == "type" and isinstance(value, str):
            value = _WHITESPACE.sub("", value)
        normalized[key] = value
    return normalized


def unique_key_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Return every unique field of *values*, filling absent ones with defaults."""

    key: Dict[str, Any] = {}
    for field_name, default in UNIQUE_FIELD_DEFAULTS.items():
        value = values.get(field_name)
        if value is None:
            value = default
        elif field_name in BOOLEAN_FIELDS:
            value = to_int_bool(value)
        elif isinstance(value, Enum):
            value = value.value
        key[field_name] = value
    return key


@dataclass
class ApnRecord:
    """Typed view of one full row of the carriers table."""

    id: int
    name: str = ""
    numeric: str = ""
    mcc: str = ""
    mnc: str = ""
    carrier_id: int = UNKNOWN_CARRIER_ID
    apn: str = ""
    user: str = ""
    server: str = ""
    password: str = ""
    proxy: str = ""
    port: str = ""
    mmsproxy: str = ""
    mmsport: str = ""
    mmsc: str = ""
    authtype: int = -1
    type: str = ""
    current: Optional[int] = None
    protocol: str = DEFAULT_PROTOCOL
    roaming_protocol: str = DEFAULT_ROAMING_PROTOCOL
    carrier_enabled: bool = True
    bearer: int = 0
    bearer_bitmask: int = 0
    network_type_bitmask: int = 0
    mvno_type: str = ""
    mvno_match_data: str = ""
    sub_id: int = INVALID_SUBSCRIPTION_ID
    profile_id: int = 0
    modem_cognitive: bool = False
    max_conns: int = 0
    wait_time: int = 0
    max_conns_time: int = 0
    mtu: int = 0
    edited: EditProvenance = EditProvenance.UNEDITED
    user_visible: bool = True
    user_editable: bool = True
    owned_by: OwnedBy = OwnedBy.OTHERS
    apn_set_id: int = NO_APN_SET_ID

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ApnRecord":
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            column = ID if f.name == "id" else f.name
            if column not in row or row[column] is None:
                continue
            value = row[column]
            if column in BOOLEAN_FIELDS:
                value = bool(to_int_bool(value))
            elif column == "edited":
                value = EditProvenance(int(value))
            elif column == "owned_by":
                value = OwnedBy(int(value))
            kwargs[f.name] = value
        if "id" not in kwargs:
            raise InvalidFieldError("row has no _id column")
        return cls(**kwargs)

    @property
    def types(self) -> List[str]:
        return split_types(self.type)

    def to_values(self) -> Dict[str, Any]:
        """Return the row as a column mapping suitable for writing back."""
        values: Dict[str, Any] = {}
        for f in fields(self):
            column = ID if f.name == "id" else f.name
            values[column] = getattr(self, f.name)
        return normalize_values(values)

    def unique_key(self) -> Tuple[Any, ...]:
        key = unique_key_values(self.to_values())
        return tuple(key[name] for name in UNIQUE_FIELDS)


__all__ = [
    "ApnRecord",
    "BOOLEAN_FIELDS",
    "COLUMNS",
    "COLUMNS_BY_NAME",
    "COLUMN_NAMES",
    "Column",
    "ColumnKind",
    "DATA_COLUMNS",
    "DELETED_STATES",
    "EditProvenance",
    "ID",
    "OwnedBy",
    "REQUIRED_SEED_FIELDS",
    "UNIQUE_FIELDS",
    "UNIQUE_FIELD_DEFAULTS",
    "ensure_known_fields",
    "normalize_values",
    "split_types",
    "to_int_bool",
    "unique_key_values",
]
