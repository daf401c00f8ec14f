"""Schema migration logic for the carriers database.

This module owns the version ladder.  Each historic layout change is one
:class:`MigrationStep`; a step runs when the stored version is below its
gate.  Additive steps add columns in place.  Rebuild steps copy every row
into a freshly created table, which is how a constraint or column type
changes in SQLite.  A rebuild always produces the current layout, so
additive steps that follow it find their column already present and count
that as success.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..config import (
    CARRIERS_TABLE,
    CARRIERS_TABLE_TMP,
    DEFAULT_PROTOCOL,
    DEFAULT_ROAMING_PROTOCOL,
    LADDER_SEED_VERSION,
)
from ..core.bitmask import (
    BEARER_BITMASK,
    NETWORK_TYPE_BITMASK,
    bearer_to_network_type_bitmask,
    bitmask_for_tech,
    network_type_to_bearer_bitmask,
    radio_tech_to_network_type,
)
from ..core.merge import ConflictMerger
from ..domain.models.apn import COLUMNS_BY_NAME, DATA_COLUMNS, ID, EditProvenance
from ..errors import ApnStoreError, ConflictError, MigrationError
from ..utils.logging import get_logger
from .engine import DatabaseManager
from .repository import ApnRepository
from .schema import create_carriers_table, existing_columns, set_user_version

logger = get_logger()

LEGACY_USER_EDITED = "user_edited"

# Fields compared by the provenance-preserving diff, with the value an
# absent candidate field is compared against.
_PRESERVE_MATCH_DEFAULTS: Dict[str, Any] = {
    "apn": "",
    "user": "",
    "server": "",
    "password": "",
    "proxy": "",
    "port": "",
    "mmsproxy": "",
    "mmsport": "",
    "mmsc": "",
    "authtype": -1,
    "type": "",
    "protocol": DEFAULT_PROTOCOL,
    "roaming_protocol": DEFAULT_ROAMING_PROTOCOL,
    "carrier_enabled": 1,
    "bearer": 0,
    "mvno_type": "",
    "mvno_match_data": "",
    "profile_id": 0,
    "modem_cognitive": 0,
    "max_conns": 0,
    "wait_time": 0,
    "max_conns_time": 0,
    "mtu": 0,
}
_BOOLEAN_SPELLINGS = {1: ("1", "true"), 0: ("0", "false")}


class StepKind(str, Enum):
    ADD_COLUMNS = "add_columns"
    REBUILD = "rebuild"


@dataclass(frozen=True)
class MigrationStep:
    """One rung of the version ladder."""

    version: int
    name: str
    kind: StepKind
    apply: Callable[["MigrationContext"], None]

    @property
    def gate(self) -> int:
        return (self.version << 16) | LADDER_SEED_VERSION

    def is_pending(self, stored_version: int) -> bool:
        return stored_version < self.gate


@dataclass
class MigrationContext:
    """State shared by the steps of one ladder run."""

    conn: sqlite3.Connection
    db: DatabaseManager
    merger: ConflictMerger
    persist_plmns: Set[str]
    old_seed_rows: Callable[[], Optional[List[Dict[str, Any]]]]


@dataclass
class MigrationResult:
    from_version: int
    to_version: int
    steps: List[str] = field(default_factory=list)
    rebuilt: bool = False


def _add_columns(*names: str) -> Callable[[MigrationContext], None]:
    def apply(ctx: MigrationContext) -> None:
        for name in names:
            SchemaMigrator.add_column(ctx.conn, CARRIERS_TABLE, name)

    return apply


def tolerant_projection(row: Mapping[str, Any], columns: Iterable[str] = DATA_COLUMNS) -> Dict[str, Any]:
    """Copy the values of *row* that the current layout knows about.

    Missing columns and empty values are dropped so the new table's
    defaults apply; ``_id`` is never copied.
    """
    values: Dict[str, Any] = {}
    for name in columns:
        if name == ID or name not in row:
            continue
        value = row[name]
        if value is None or value == "":
            continue
        values[name] = value
    return values


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text.lstrip("-").isdigit():
        return None
    return int(text)


class SchemaMigrator:
    """Runs the version ladder for the carriers table.

    Args:
        db: The database manager owning the connection.
        merger: Merge used when a copied row collides in the new table.
        persist_plmns: Operator numerics whose rows are preserved as
            carrier edits by the first rebuild.
        old_seed_rows: Returns the previous seed's normalized candidates,
            or ``None`` when no snapshot is available.
    """

    def __init__(
        self,
        db: DatabaseManager,
        merger: Optional[ConflictMerger] = None,
        persist_plmns: Iterable[str] = (),
        old_seed_rows: Optional[Callable[[], Optional[List[Dict[str, Any]]]]] = None,
    ) -> None:
        self.db = db
        self.persist_plmns = {str(p).lower() for p in persist_plmns}
        self.merger = merger or ConflictMerger(self.persist_plmns)
        self.old_seed_rows = old_seed_rows or (lambda: None)
        self.steps: List[MigrationStep] = self.build_ladder()

    @staticmethod
    def build_ladder() -> List[MigrationStep]:
        add, rebuild = StepKind.ADD_COLUMNS, StepKind.REBUILD
        return [
            MigrationStep(5, "authtype", add, _add_columns("authtype")),
            MigrationStep(6, "protocols", add, _add_columns("protocol", "roaming_protocol")),
            MigrationStep(7, "carrier_enabled_bearer", add, _add_columns("carrier_enabled", "bearer")),
            MigrationStep(8, "mvno", add, _add_columns("mvno_type", "mvno_match_data")),
            MigrationStep(9, "sub_id", add, _add_columns("sub_id")),
            MigrationStep(
                10,
                "modem_profile",
                add,
                _add_columns("profile_id", "modem_cognitive", "max_conns", "wait_time", "max_conns_time"),
            ),
            MigrationStep(11, "mtu", add, _add_columns("mtu")),
            MigrationStep(15, "edited_and_bearer_bitmask", rebuild, SchemaMigrator._rebuild_v15),
            MigrationStep(17, "user_visible", add, _add_columns("user_visible")),
            MigrationStep(21, "user_editable", add, _add_columns("user_editable")),
            MigrationStep(23, "owned_by", add, _add_columns("owned_by")),
            MigrationStep(24, "network_type_bitmask", rebuild, SchemaMigrator._rebuild_v24),
            MigrationStep(26, "apn_set_id", add, _add_columns("apn_set_id")),
            MigrationStep(29, "carrier_id", rebuild, SchemaMigrator._rebuild_v29),
        ]

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    def pending_steps(self, stored_version: int) -> List[MigrationStep]:
        return [step for step in self.steps if step.is_pending(stored_version)]

    def needs_rebuild(self, stored_version: int) -> bool:
        return any(step.kind is StepKind.REBUILD for step in self.pending_steps(stored_version))

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------
    def migrate(self, stored_version: int, target_version: int) -> MigrationResult:
        """Run every pending step and store *target_version*.

        The whole ladder is one transaction; on failure the database is
        left at *stored_version*.

        Raises:
            MigrationError: When a step fails.
        """
        result = MigrationResult(stored_version, target_version)
        pending = self.pending_steps(stored_version)
        try:
            with self.db.transaction() as conn:
                ctx = MigrationContext(
                    conn=conn,
                    db=self.db,
                    merger=self.merger,
                    persist_plmns=self.persist_plmns,
                    old_seed_rows=self.old_seed_rows,
                )
                for step in pending:
                    logger.info("Applying migration step v%d (%s)", step.version, step.name)
                    step.apply(ctx)
                    result.steps.append(step.name)
                    if step.kind is StepKind.REBUILD:
                        result.rebuilt = True
                set_user_version(conn, target_version)
        except (sqlite3.Error, ApnStoreError) as exc:
            if isinstance(exc, MigrationError):
                raise
            raise MigrationError(
                f"Upgrade from {stored_version:#x} to {target_version:#x} failed: {exc}"
            ) from exc
        logger.info(
            "Migrated carriers from %#x to %#x (%d steps)",
            stored_version,
            target_version,
            len(result.steps),
        )
        return result

    @staticmethod
    def add_column(conn: sqlite3.Connection, table: str, column_name: str) -> bool:
        """Add *column_name*; an already present column counts as success."""
        column = COLUMNS_BY_NAME[column_name]
        try:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column.ddl}")
        except sqlite3.OperationalError as exc:
            if "duplicate column" not in str(exc).lower():
                raise
            logger.debug("Column %s already present in %s", column_name, table)
            return False
        logger.info("Adding missing column: %s", column_name)
        return True

    # ------------------------------------------------------------------
    # Rebuilds
    # ------------------------------------------------------------------
    @staticmethod
    def _rebuild(
        ctx: MigrationContext,
        transform: Callable[[Mapping[str, Any], Set[str]], Dict[str, Any]],
    ) -> None:
        old_columns = existing_columns(ctx.conn, CARRIERS_TABLE)
        rows = [dict(row) for row in ctx.conn.execute(f"SELECT * FROM {CARRIERS_TABLE}")]
        logger.info("Rebuilding %s with %d rows", CARRIERS_TABLE, len(rows))

        ctx.conn.execute(f"DROP TABLE IF EXISTS {CARRIERS_TABLE_TMP}")
        create_carriers_table(ctx.conn, CARRIERS_TABLE_TMP)
        tmp = ApnRepository(ctx.db, CARRIERS_TABLE_TMP)
        for row in rows:
            values = transform(row, old_columns)
            try:
                tmp.insert(values)
            except ConflictError as exc:
                if exc.existing is None:
                    raise
                ctx.merger.merge(tmp, exc.existing, values, on_upgrade=True)

        ctx.conn.execute(f"DROP TABLE IF EXISTS {CARRIERS_TABLE}")
        ctx.conn.execute(f"ALTER TABLE {CARRIERS_TABLE_TMP} RENAME TO {CARRIERS_TABLE}")

    @staticmethod
    def _rebuild_v15(ctx: MigrationContext) -> None:
        SchemaMigrator._delete_seed_matches(ctx)

        def transform(row: Mapping[str, Any], columns: Set[str]) -> Dict[str, Any]:
            values = tolerant_projection(row)
            bearer = _as_int(row.get("bearer"))
            if bearer is not None:
                values[BEARER_BITMASK] = bitmask_for_tech(bearer)
                values[NETWORK_TYPE_BITMASK] = bitmask_for_tech(radio_tech_to_network_type(bearer))

            has_user_edited = LEGACY_USER_EDITED in columns
            if has_user_edited:
                legacy = _as_int(row.get(LEGACY_USER_EDITED))
                if legacy is not None:
                    values["edited"] = legacy
            else:
                values["edited"] = int(EditProvenance.CARRIER_EDITED)

            numeric = str(row.get("numeric") or "").lower()
            if numeric and numeric in ctx.persist_plmns and not values.get("mvno_type"):
                if not has_user_edited:
                    values["edited"] = int(EditProvenance.CARRIER_EDITED)
                elif values.get("edited") == int(EditProvenance.USER_EDITED):
                    values["edited"] = int(EditProvenance.CARRIER_EDITED)
            return values

        SchemaMigrator._rebuild(ctx, transform)

    @staticmethod
    def _rebuild_v24(ctx: MigrationContext) -> None:
        def transform(row: Mapping[str, Any], columns: Set[str]) -> Dict[str, Any]:
            values = tolerant_projection(row)
            if NETWORK_TYPE_BITMASK in columns:
                network = _as_int(row.get(NETWORK_TYPE_BITMASK))
                if network is not None:
                    values[BEARER_BITMASK] = network_type_to_bearer_bitmask(network)
            elif BEARER_BITMASK in columns:
                bearer = _as_int(row.get(BEARER_BITMASK))
                if bearer is not None:
                    values[NETWORK_TYPE_BITMASK] = bearer_to_network_type_bitmask(bearer)
            return values

        SchemaMigrator._rebuild(ctx, transform)

    @staticmethod
    def _rebuild_v29(ctx: MigrationContext) -> None:
        SchemaMigrator._rebuild(ctx, lambda row, columns: tolerant_projection(row))

    @staticmethod
    def _delete_seed_matches(ctx: MigrationContext) -> int:
        """Delete rows identical to an entry of the previous seed.

        What survives was added or edited by the user or the carrier.  The
        new seed recreates everything else.
        """
        seed_rows = ctx.old_seed_rows()
        if seed_rows is None:
            logger.error(
                "No previous seed snapshot; user and carrier entries cannot be told apart "
                "from seed entries during this upgrade"
            )
            return 0

        columns = existing_columns(ctx.conn, CARRIERS_TABLE)
        deleted = 0
        for candidate in seed_rows:
            sql, params = SchemaMigrator._seed_match_clause(candidate, columns)
            if sql is None:
                continue
            deleted += ctx.conn.execute(f"DELETE FROM {CARRIERS_TABLE} WHERE {sql}", params).rowcount
        logger.info("Removed %d rows matching the previous seed", deleted)
        return deleted

    @staticmethod
    def _seed_match_clause(candidate: Mapping[str, Any], columns: Set[str]):
        required = ("numeric", "mcc", "mnc")
        if any(not candidate.get(name) for name in required):
            return None, []
        clauses: List[str] = []
        params: List[Any] = []
        for name in required:
            clauses.append(f"{name} = ?")
            params.append(candidate[name])
        for name, default in _PRESERVE_MATCH_DEFAULTS.items():
            if name not in columns:
                continue
            value = candidate.get(name)
            if value is None:
                value = default
            if name in ("carrier_enabled", "modem_cognitive"):
                flag = 0 if str(value).strip().lower() in ("0", "false") else 1
                spellings: Sequence[str] = _BOOLEAN_SPELLINGS[flag]
                clauses.append(f"({name} = ? OR {name} = ? OR {name} IS NULL)")
                params.extend(spellings)
                continue
            clauses.append(f"({name} = ? OR {name} IS NULL)")
            params.append(value)
        return " AND ".join(clauses), params


__all__ = [
    "MigrationContext",
    "MigrationResult",
    "MigrationStep",
    "SchemaMigrator",
    "StepKind",
    "tolerant_projection",
]
