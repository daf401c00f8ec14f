"""Seed documents and where they are read from.

A seed document is a public version number plus an ordered list of APN
candidates.  The default reader accepts a JSON container::

    {"version": 7, "apns": [{"mcc": "310", "mnc": "260", ...}, ...]}

Any callable mapping a path to a :class:`SeedDocument` can stand in for it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from ..config import OEM_APNS_PATH, OLD_APNS_PATH, OTA_UPDATED_APNS_PATH, PARTNER_APNS_PATH
from ..errors import SeedSourceError
from ..utils.jsonio import read_json
from ..utils.logging import get_logger

logger = get_logger()

SEED_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["version", "apns"],
    "properties": {
        "version": {"type": "integer", "minimum": 0},
        "apns": {"type": "array", "items": {"type": "object"}},
    },
}

_VALIDATOR = Draft202012Validator(SEED_SCHEMA)


@dataclass
class SeedDocument:
    version: int
    candidates: List[Dict[str, Any]] = field(default_factory=list)
    path: Optional[Path] = None

    def __len__(self) -> int:
        return len(self.candidates)


SeedParser = Callable[[Path], SeedDocument]


def parse_json_seed(path: Path) -> SeedDocument:
    """Read a JSON seed container from *path*.

    Raises:
        SeedSourceError: If the file is not valid JSON or not a seed document.
    """
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        raise SeedSourceError(f"Could not read seed document {path}: {exc}") from exc
    try:
        _VALIDATOR.validate(data)
    except ValidationError as exc:
        raise SeedSourceError(f"Invalid seed document {path}: {exc.message}") from exc
    return SeedDocument(version=int(data["version"]), candidates=list(data["apns"]), path=path)


def pick_second_if_exists(first: Path, second: Path) -> Path:
    return second if second.exists() else first


@dataclass
class SeedSource:
    """Locates the fallback, override and previous seed documents.

    The override is the partner document under *system_root*, replaced by
    the OEM document when present, replaced by the over-the-air update when
    present.
    """

    system_root: Path
    oem_root: Path
    data_root: Path
    fallback_path: Optional[Path] = None
    parser: SeedParser = parse_json_seed

    def override_path(self) -> Path:
        path = self.system_root / PARTNER_APNS_PATH
        path = pick_second_if_exists(path, self.oem_root / OEM_APNS_PATH)
        return pick_second_if_exists(path, self.data_root / OTA_UPDATED_APNS_PATH)

    def old_snapshot_path(self) -> Path:
        return self.system_root / OLD_APNS_PATH

    def _load(self, path: Optional[Path], label: str) -> Optional[SeedDocument]:
        if path is None or not path.exists():
            logger.info("No %s seed document at %s", label, path)
            return None
        document = self.parser(path)
        logger.debug("Loaded %s seed %s: version %d, %d candidates", label, path, document.version, len(document))
        return document

    def load_fallback(self) -> Optional[SeedDocument]:
        return self._load(self.fallback_path, "fallback")

    def load_override(self) -> Optional[SeedDocument]:
        return self._load(self.override_path(), "override")

    def load_old_snapshot(self) -> Optional[SeedDocument]:
        return self._load(self.old_snapshot_path(), "previous")

    def public_version(self) -> int:
        """Version of the fallback document, or ``-1`` when it is unreadable."""
        try:
            document = self.load_fallback()
        except SeedSourceError as exc:
            logger.error("Could not read fallback seed version: %s", exc)
            return -1
        return document.version if document is not None else -1


__all__ = [
    "SEED_SCHEMA",
    "SeedDocument",
    "SeedParser",
    "SeedSource",
    "parse_json_seed",
    "pick_second_if_exists",
]
