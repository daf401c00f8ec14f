"""Runtime configuration for :class:`apnstore.engine.ApnEngine`."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Tuple

from jsonschema.exceptions import ValidationError

from ..config import CONFIG_FILE_NAME, DATABASE_NAME, INVALID_SUBSCRIPTION_ID, STATE_FILE_NAME
from ..errors import SettingsLoadError, SettingsValidationError
from ..utils.jsonio import read_json
from .schema import merge_config_with_defaults


@dataclass(frozen=True)
class EngineConfig:
    """Where the engine keeps its files and which operators get special care.

    ``persist_apns_for_plmn`` is the operator allow-list used both by the
    tethering row split and by the first rebuild migration.
    """

    db_path: Path
    state_path: Optional[Path]
    system_root: Path
    oem_root: Path
    data_root: Path
    fallback_seed: Optional[Path] = None
    persist_apns_for_plmn: Tuple[str, ...] = field(default_factory=tuple)
    build_id: Optional[str] = None
    default_sub_id: int = INVALID_SUBSCRIPTION_ID

    @classmethod
    def for_directory(cls, base: Path, **overrides: Any) -> "EngineConfig":
        """Configuration keeping everything under *base*."""

        values: dict[str, Any] = {
            "db_path": base / DATABASE_NAME,
            "state_path": base / STATE_FILE_NAME,
            "system_root": base / "system",
            "oem_root": base / "oem",
            "data_root": base / "data",
        }
        values.update(overrides)
        if "persist_apns_for_plmn" in values:
            values["persist_apns_for_plmn"] = tuple(values["persist_apns_for_plmn"])
        return cls(**values)


def _resolve(base: Path, value: Optional[str]) -> Optional[Path]:
    if value is None:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else base / path


def load_engine_config(path: Path) -> EngineConfig:
    """Read an engine configuration file.

    Relative paths are resolved against the file's directory.  A directory
    may be given instead of a file, in which case ``apnstore.json`` inside
    it is read when present and defaults are used otherwise.

    Raises:
        SettingsLoadError: If the file cannot be read.
        SettingsValidationError: If its contents do not match the schema.
    """
    if path.is_dir():
        base = path
        path = path / CONFIG_FILE_NAME
    else:
        base = path.parent

    payload = None
    if path.exists():
        try:
            payload = read_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise SettingsLoadError(f"Could not read config file {path}: {exc}") from exc
    try:
        data = merge_config_with_defaults(payload)
    except ValidationError as exc:
        raise SettingsValidationError(exc.message) from exc

    return EngineConfig(
        db_path=_resolve(base, data["database"]),
        state_path=_resolve(base, data["state_file"]),
        system_root=_resolve(base, data["system_root"]),
        oem_root=_resolve(base, data["oem_root"]),
        data_root=_resolve(base, data["data_root"]),
        fallback_seed=_resolve(base, data["fallback_seed"]),
        persist_apns_for_plmn=tuple(data["persist_apns_for_plmn"]),
        build_id=data["build_id"],
        default_sub_id=int(data["default_sub_id"]),
    )


__all__ = ["EngineConfig", "load_engine_config"]
