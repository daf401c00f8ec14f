"""Schema helpers for the engine configuration and persisted state files."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import DEFAULT_CHECKSUM, INVALID_SUBSCRIPTION_ID

STATE_SCHEMA_ID = "apnstore/state@1"
CONFIG_SCHEMA_ID = "apnstore/config@1"

_SNAPSHOT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["version", "fields"],
    "properties": {
        "version": {"type": "integer"},
        "fields": {"type": "object"},
    },
}

STATE_SCHEMA: dict[str, Any] = {
    "$id": "apnstore/state.schema.json",
    "type": "object",
    "required": ["schema", "checksum", "preferred", "snapshots"],
    "properties": {
        "schema": {"const": STATE_SCHEMA_ID},
        "checksum": {"type": "integer"},
        "build_id": {"type": ["string", "null"]},
        "managed_enforced": {"type": "boolean"},
        "preferred": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["apn_id"],
                "properties": {
                    "apn_id": {"type": "integer"},
                    "explicit_set_called": {"type": "boolean"},
                },
            },
        },
        "snapshots": {"type": "object", "additionalProperties": _SNAPSHOT_SCHEMA},
    },
    "additionalProperties": True,
}

DEFAULT_STATE: dict[str, Any] = {
    "schema": STATE_SCHEMA_ID,
    "checksum": DEFAULT_CHECKSUM,
    "build_id": None,
    "managed_enforced": False,
    "preferred": {},
    "snapshots": {},
}

CONFIG_SCHEMA: dict[str, Any] = {
    "$id": "apnstore/config.schema.json",
    "type": "object",
    "required": ["schema"],
    "properties": {
        "schema": {"const": CONFIG_SCHEMA_ID},
        "database": {"type": "string", "minLength": 1},
        "state_file": {"type": "string", "minLength": 1},
        "system_root": {"type": "string"},
        "oem_root": {"type": "string"},
        "data_root": {"type": "string"},
        "fallback_seed": {"type": ["string", "null"]},
        "persist_apns_for_plmn": {
            "type": "array",
            "items": {"type": "string", "pattern": "^[0-9]{5,6}$"},
        },
        "build_id": {"type": ["string", "null"]},
        "default_sub_id": {"type": "integer"},
    },
    "additionalProperties": False,
}

DEFAULT_CONFIG: dict[str, Any] = {
    "schema": CONFIG_SCHEMA_ID,
    "database": "telephony.db",
    "state_file": "apnstore-state.json",
    "system_root": "system",
    "oem_root": "oem",
    "data_root": "data",
    "fallback_seed": None,
    "persist_apns_for_plmn": [],
    "build_id": None,
    "default_sub_id": INVALID_SUBSCRIPTION_ID,
}

_state_validator = Draft202012Validator(STATE_SCHEMA)
_config_validator = Draft202012Validator(CONFIG_SCHEMA)


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_STATE` and validate the result."""

    merged = deepcopy(DEFAULT_STATE)
    if data:
        for key, value in data.items():
            if key in ("preferred", "snapshots") and isinstance(value, dict):
                merged[key] = {str(sub): entry for sub, entry in value.items()}
                continue
            merged[key] = value
    _state_validator.validate(merged)
    return merged


def merge_config_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_CONFIG` and validate the result."""

    merged = deepcopy(DEFAULT_CONFIG)
    if data:
        merged.update(data)
    _config_validator.validate(merged)
    return merged


def validate_state(data: dict[str, Any]) -> None:
    """Validate *data* against the state schema."""

    _state_validator.validate(data)


__all__ = [
    "CONFIG_SCHEMA",
    "CONFIG_SCHEMA_ID",
    "DEFAULT_CONFIG",
    "DEFAULT_STATE",
    "STATE_SCHEMA",
    "STATE_SCHEMA_ID",
    "merge_config_with_defaults",
    "merge_with_defaults",
    "validate_state",
]
