"""Checksum gate deciding whether the seed needs to be applied again."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import DEFAULT_CHECKSUM
from ..utils.hashutils import file_xxh3_64
from ..utils.logging import get_logger
from .source import SeedSource

logger = get_logger()

_MODULUS = 2 ** 63


class ChecksumGate:
    """Fingerprint of the seed inputs currently on disk."""

    def __init__(self, source: SeedSource) -> None:
        self.source = source

    @staticmethod
    def _file_checksum(path: Optional[Path]) -> Optional[int]:
        if path is None or not path.exists():
            return None
        try:
            return file_xxh3_64(path)
        except OSError as exc:
            logger.error("Could not hash %s: %s", path, exc)
            return None

    def compute(self) -> int:
        override = self._file_checksum(self.source.override_path())
        checksum = override if override is not None else -1
        fallback = self._file_checksum(self.source.fallback_path)
        if fallback is None:
            logger.error("Fallback seed %s missing; checksum covers the override only", self.source.fallback_path)
        else:
            checksum += fallback
        return checksum % _MODULUS

    def is_current(self, stored: Optional[int]) -> bool:
        """True when *stored* matches the files on disk."""
        stored_value = DEFAULT_CHECKSUM if stored is None else int(stored)
        current = self.compute()
        if stored_value == current:
            logger.debug("Seed checksum unchanged (%d)", current)
            return True
        logger.info("Seed checksum changed from %d to %d", stored_value, current)
        return False


__all__ = ["ChecksumGate"]
