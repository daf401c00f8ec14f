"""Tests for the exception hierarchy."""

import pytest

from apnstore.errors import (
    ApnStoreError,
    ApplicationError,
    ConflictError,
    DatabaseError,
    DomainError,
    EngineClosedError,
    InfrastructureError,
    InvalidFieldError,
    MalformedSeedRecordError,
    MigrationError,
    SeedSourceError,
    SeedVersionMismatchError,
    SettingsError,
    SettingsLoadError,
    SettingsValidationError,
    WriteFailedError,
)


@pytest.mark.parametrize(
    "error_cls, layer",
    [
        (ConflictError, DomainError),
        (InvalidFieldError, DomainError),
        (MalformedSeedRecordError, DomainError),
        (SeedVersionMismatchError, DomainError),
        (DatabaseError, InfrastructureError),
        (WriteFailedError, DatabaseError),
        (MigrationError, DatabaseError),
        (SeedSourceError, InfrastructureError),
        (EngineClosedError, ApplicationError),
        (SettingsLoadError, SettingsError),
        (SettingsValidationError, SettingsError),
    ],
)
def test_layers(error_cls, layer) -> None:
    assert issubclass(error_cls, layer)
    assert issubclass(error_cls, ApnStoreError)


def test_invalid_field_is_a_value_error() -> None:
    assert issubclass(InvalidFieldError, ValueError)


def test_conflict_error_carries_rows() -> None:
    existing = {"_id": 3, "numeric": "310260"}
    exc = ConflictError("collision", existing, row_id=7)
    assert exc.existing == existing
    assert exc.existing is not existing
    assert exc.row_id == 7
    assert ConflictError("no row").existing is None
