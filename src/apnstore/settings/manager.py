"""Persisted engine state with validation."""

from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

from jsonschema.exceptions import ValidationError

from ..errors import SettingsLoadError, SettingsValidationError
from ..utils.jsonio import read_json, write_json
from ..utils.logging import get_logger
from .schema import DEFAULT_STATE, merge_with_defaults

logger = get_logger()


class StateStore:
    """Load, validate and persist the engine's small key/value state.

    The state holds the seed checksum, the last seen build id, the managed
    enforcement flag and the preferred-APN cache and snapshots.  Every
    change is written through immediately.  With *path* ``None`` the state
    lives in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._data: dict[str, Any] = deepcopy(DEFAULT_STATE)

    @property
    def path(self) -> Path | None:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> None:
        """Load the state JSON from disk, creating defaults if missing."""

        path = self._path
        payload = None
        if path is not None and path.exists():
            try:
                payload = read_json(path)
            except (OSError, json.JSONDecodeError) as exc:
                raise SettingsLoadError(f"Could not read state file {path}: {exc}") from exc
        try:
            self._data = merge_with_defaults(payload)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return the value for *key*, supporting dotted access for nested keys."""

        target = self._data
        parts = key.split(".")
        for index, part in enumerate(parts):
            if not isinstance(target, dict) or part not in target:
                return default
            value = target[part]
            if index == len(parts) - 1:
                return value
            target = value
        return default

    def set(self, key: str, value: Any) -> None:
        """Update *key* with *value* and persist the change."""

        parts = key.split(".")
        target: dict[str, Any] = self._data
        for part in parts[:-1]:
            branch = target.get(part)
            if not isinstance(branch, dict):
                branch = {}
                target[part] = branch
            target = branch
        target[parts[-1]] = value
        self._commit()

    def remove(self, key: str) -> None:
        """Delete *key* if present and persist the change."""

        parts = key.split(".")
        target = self._data
        for part in parts[:-1]:
            target = target.get(part)
            if not isinstance(target, dict):
                return
        if target.pop(parts[-1], None) is not None:
            self._commit()

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------
    @property
    def checksum(self) -> int:
        return int(self._data["checksum"])

    @checksum.setter
    def checksum(self, value: int) -> None:
        self.set("checksum", int(value))

    @property
    def build_id(self) -> Optional[str]:
        return self._data.get("build_id")

    @build_id.setter
    def build_id(self, value: Optional[str]) -> None:
        self.set("build_id", value)

    @property
    def managed_enforced(self) -> bool:
        return bool(self._data.get("managed_enforced", False))

    @managed_enforced.setter
    def managed_enforced(self, value: bool) -> None:
        self.set("managed_enforced", bool(value))

    def preferred_entries(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._data["preferred"])

    # ------------------------------------------------------------------
    # Internal utilities
    # ------------------------------------------------------------------
    def _commit(self) -> None:
        try:
            self._data = merge_with_defaults(self._data)
        except ValidationError as exc:
            raise SettingsValidationError(exc.message) from exc
        self._write()

    def _write(self) -> None:
        if self._path is None:
            return
        write_json(self._path, self._data)


__all__ = ["StateStore"]
