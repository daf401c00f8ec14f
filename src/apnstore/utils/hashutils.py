"""Hashing utilities."""

from __future__ import annotations

from pathlib import Path

import xxhash

from ..config import HASH_CHUNK_SIZE


def file_xxh3_64(path: Path, *, chunk_size: int = HASH_CHUNK_SIZE) -> int:
    """Return the XXH3 64-bit digest of *path* as an unsigned integer."""

    hasher = xxhash.xxh3_64()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.intdigest()


__all__ = ["file_xxh3_64"]
