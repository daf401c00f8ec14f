"""Custom exception hierarchy for apnstore."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class ApnStoreError(Exception):
    """Base class for all custom errors raised by apnstore."""


# --- 3-layer hierarchy ---

class DomainError(ApnStoreError):
    """Base class for domain-level errors."""


class InfrastructureError(ApnStoreError):
    """Base class for infrastructure-level errors."""


class ApplicationError(ApnStoreError):
    """Base class for application-level errors."""


# --- Domain errors ---

class ConflictError(DomainError):
    """Raised when a write collides with an existing row on the unique fields.

    ``existing`` holds the colliding row so callers can merge into it and
    ``row_id`` the row whose update collided, when the write was an update.
    """

    def __init__(
        self,
        message: str,
        existing: Optional[Mapping[str, Any]] = None,
        row_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.existing = dict(existing) if existing is not None else None
        self.row_id = row_id


class InvalidFieldError(DomainError, ValueError):
    """Raised when a record or filter names an unknown column."""


class MalformedSeedRecordError(DomainError):
    """Raised when a seed candidate lacks a required unique-key field."""


class SeedVersionMismatchError(DomainError):
    """Raised when the override seed version differs from the fallback version."""


# --- Infrastructure errors ---

class DatabaseError(InfrastructureError):
    """Raised when a database operation fails."""


class WriteFailedError(DatabaseError):
    """Raised when a write (including a conflict merge) cannot be committed."""


class MigrationError(DatabaseError):
    """Raised when a schema migration step fails."""


class SeedSourceError(InfrastructureError):
    """Raised when a seed document exists but cannot be read."""


# --- Application errors ---

class EngineClosedError(ApplicationError):
    """Raised when an operation is attempted on a closed engine."""


class SettingsError(ApnStoreError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""
