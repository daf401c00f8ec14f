"""Typer-based CLI entry point."""

from __future__ import annotations

import json
import logging
from functools import wraps
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from .application.services.catalog_service import QueryScope
from .application.services.sim_matching import SimIdentity
from .config import INVALID_APN_ID
from .domain.models.apn import COLUMNS_BY_NAME, ColumnKind
from .domain.models.query import ApnFilter, order_by
from .engine import ApnEngine
from .errors import (
    ApnStoreError,
    ConflictError,
    InvalidFieldError,
    MigrationError,
    SettingsError,
)
from .settings.config import load_engine_config
from .utils.logging import configure_logging

app = typer.Typer(help="APN catalog with seed reconciliation and schema migration")

_DEFAULT_COLUMNS = ["_id", "name", "numeric", "apn", "type", "edited", "owned_by"]

HomeOption = typer.Option(
    Path.cwd(),
    "--home",
    "-H",
    help="Configuration file, or a directory holding apnstore.json",
)


def _handle_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ConflictError, InvalidFieldError, SettingsError, MigrationError) as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except ApnStoreError as exc:
            typer.echo(f"Unexpected error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


def _open_engine(home: Path) -> ApnEngine:
    config = load_engine_config(home)
    return ApnEngine(config).open()


def _parse_assignments(pairs: List[str]) -> dict:
    values = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected FIELD=VALUE, got {pair!r}")
        column = COLUMNS_BY_NAME.get(key)
        if column is not None and column.kind is ColumnKind.TEXT:
            # Keeps leading zeros of mnc and friends.
            values[key] = raw
            continue
        try:
            values[key] = json.loads(raw)
        except json.JSONDecodeError:
            values[key] = raw
    return values


def _filter_from(pairs: List[str]) -> Optional[ApnFilter]:
    if not pairs:
        return None
    filter_params = ApnFilter()
    for key, value in _parse_assignments(pairs).items():
        filter_params.where(key, value)
    return filter_params


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    configure_logging(logging.DEBUG if verbose else logging.WARNING)


@app.command()
@_handle_errors
def init(home: Path = HomeOption) -> None:
    """Create the database and apply the seed if needed."""

    with _open_engine(home) as engine:
        count = len(engine.query())
        print(f"[green]Catalog ready at {engine.config.db_path} with {count} APNs")


@app.command()
@_handle_errors
def status(home: Path = HomeOption) -> None:
    """Show database version, seed checksum and row counts."""

    with _open_engine(home) as engine:
        version = engine.database_version()
        print(
            f"Database: {engine.config.db_path}\n"
            f"Version: {version:#x}\n"
            f"Seed checksum: {engine.state.checksum}\n"
            f"Build id: {engine.state.build_id or '-'}\n"
            f"Managed enforced: {engine.is_managed_enforced()}\n"
            f"APNs: {len(engine.query())} ({len(engine.query(scope=QueryScope.DPC))} managed)"
        )


@app.command()
@_handle_errors
def query(
    where: List[str] = typer.Option([], "--where", "-w", help="FIELD=VALUE equality filter"),
    columns: List[str] = typer.Option([], "--column", "-c", help="Column to show"),
    scope: QueryScope = typer.Option(QueryScope.ALL, help="Which owner's rows to show"),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON"),
    home: Path = HomeOption,
) -> None:
    """List APN rows."""

    projection = columns or _DEFAULT_COLUMNS
    with _open_engine(home) as engine:
        rows = engine.query(_filter_from(where), projection, order_by("_id"), scope)
    if as_json:
        typer.echo(json.dumps(rows, indent=2))
        return
    table = Table(*projection)
    for row in rows:
        table.add_row(*("" if row.get(c) is None else str(row.get(c)) for c in projection))
    Console().print(table)


@app.command()
@_handle_errors
def insert(
    assignments: List[str] = typer.Argument(..., help="FIELD=VALUE pairs"),
    home: Path = HomeOption,
) -> None:
    """Insert an APN; a duplicate merges into the existing row."""

    with _open_engine(home) as engine:
        row_id = engine.insert(_parse_assignments(assignments))
    print(f"[green]APN stored as row {row_id}")


@app.command()
@_handle_errors
def delete(
    row_id: Optional[int] = typer.Argument(None, help="Row to delete"),
    where: List[str] = typer.Option([], "--where", "-w", help="FIELD=VALUE equality filter"),
    home: Path = HomeOption,
) -> None:
    """Delete APN rows by id or filter."""

    if row_id is None and not where:
        raise typer.BadParameter("Give a row id or at least one --where filter")
    with _open_engine(home) as engine:
        if row_id is not None:
            count = engine.delete_by_id(row_id)
        else:
            count = engine.delete(_filter_from(where))
    print(f"[green]Deleted {count} APNs")


@app.command()
@_handle_errors
def restore(
    sub_id: int = typer.Option(-1, "--sub", help="Subscription whose preferred APN is reset"),
    sim_operator: Optional[str] = typer.Option(None, "--operator", help="Restore only this operator's rows"),
    home: Path = HomeOption,
) -> None:
    """Restore the seeded APNs."""

    sim = SimIdentity(sim_operator) if sim_operator else None
    with _open_engine(home) as engine:
        report = engine.restore_factory_defaults(sub_id, sim)
    print(f"[green]Restored {report.applied} seeded APNs")


@app.command("update-db")
@_handle_errors
def update_db(home: Path = HomeOption) -> None:
    """Drop unedited rows and apply the seed again."""

    with _open_engine(home) as engine:
        report = engine.update_apn_db()
    print(
        f"[green]Seed applied: {report.inserted} inserted, {report.merged} merged, "
        f"{report.skipped} skipped, {report.purged} purged"
    )


@app.command()
@_handle_errors
def prefer(
    sub_id: int = typer.Argument(..., help="Subscription id"),
    row_id: Optional[int] = typer.Argument(None, help="Row to prefer; omit to show the current one"),
    clear: bool = typer.Option(False, "--clear", help="Forget the preferred APN"),
    home: Path = HomeOption,
) -> None:
    """Show or set the preferred APN of a subscription."""

    with _open_engine(home) as engine:
        if clear:
            engine.clear_preferred(sub_id)
            print(f"[green]Cleared preferred APN for subscription {sub_id}")
            return
        if row_id is not None:
            engine.set_preferred(sub_id, row_id)
            print(f"[green]Preferred APN for subscription {sub_id} is row {row_id}")
            return
        apn_id = engine.get_preferred(sub_id)
    if apn_id == INVALID_APN_ID:
        print(f"No preferred APN for subscription {sub_id}")
    else:
        print(f"Preferred APN for subscription {sub_id} is row {apn_id}")


@app.command()
@_handle_errors
def current(
    numeric: str = typer.Argument(..., help="Operator numeric (MCC+MNC)"),
    home: Path = HomeOption,
) -> None:
    """Mark an operator's APNs as the current ones."""

    with _open_engine(home) as engine:
        count = engine.set_current(numeric)
    print(f"[green]Marked {count} APNs of {numeric} as current")


if __name__ == "__main__":  # pragma: no cover
    app()
