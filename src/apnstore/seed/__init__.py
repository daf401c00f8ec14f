"""Seed documents, loading and the checksum gate."""

from .checksum import ChecksumGate
from .loader import SeedLoader, SeedReport, normalize_candidate
from .source import SeedDocument, SeedSource, parse_json_seed

__all__ = [
    "ChecksumGate",
    "SeedDocument",
    "SeedLoader",
    "SeedReport",
    "SeedSource",
    "normalize_candidate",
    "parse_json_seed",
]
