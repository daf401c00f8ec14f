"""The APN engine: one value owning the catalog, its seed and its state.

Every public method takes the engine lock, so callers on different threads
see each operation as atomic.  ``open()`` finishes start-up (table creation
or migration, first seeding, the build-id check and the checksum gate)
before it returns.
"""

from __future__ import annotations

import sqlite3
import threading
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar

from .application.services.catalog_service import CatalogService, QueryScope
from .application.services.preferred_apn import PreferredApnResolver
from .application.services.sim_matching import SimApnMatcher, SimIdentity
from .config import CARRIERS_TABLE, DATABASE_VERSION, INVALID_APN_ID
from .core.merge import ConflictMerger
from .domain.models.query import ApnFilter, OrderBy
from .errors import EngineClosedError, MalformedSeedRecordError, SeedSourceError
from .events import (
    ApnTableChanged,
    EventBus,
    PreferredApnChanged,
    SchemaMigrated,
    SeedLoaded,
)
from .seed.checksum import ChecksumGate
from .seed.loader import SeedLoader, SeedReport, normalize_candidate
from .seed.source import SeedDocument, SeedSource
from .settings.config import EngineConfig
from .settings.manager import StateStore
from .store.engine import DatabaseManager
from .store.migrations import SchemaMigrator
from .store.queries import OnConflict, QueryBuilder
from .store.recovery import RecoveryService
from .store.repository import ApnRepository
from .store.schema import create_carriers_table, get_user_version, set_user_version, table_exists
from .utils.logging import get_logger

logger = get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def _locked(func: F) -> F:
    """Run *func* under the engine lock on an open engine."""

    @wraps(func)
    def wrapper(self: "ApnEngine", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            self._ensure_open()
            return func(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _insert_salvaged(conn: sqlite3.Connection, rows: List[Dict[str, Any]]) -> None:
    for row in rows:
        values = {k: v for k, v in row.items() if v is not None}
        sql, params = QueryBuilder.build_insert(CARRIERS_TABLE, values, OnConflict.IGNORE)
        conn.execute(sql, params)


def _read_seed(read: Callable[[], Optional[SeedDocument]]) -> Optional[SeedDocument]:
    """Return the document *read* produces; an unreadable one counts as absent."""
    try:
        return read()
    except SeedSourceError as exc:
        logger.error("Ignoring seed document: %s", exc)
        return None


class ApnEngine:
    """Facade over the carriers catalog.

    Args:
        config: Where the database, state and seed documents live.
        bus: Event bus receiving change notifications; a private one is
            created when omitted.
    """

    def __init__(self, config: EngineConfig, bus: Optional[EventBus] = None) -> None:
        self.config = config
        self.bus = bus or EventBus()
        self._lock = threading.RLock()
        self._open = False

        self.source = SeedSource(
            system_root=config.system_root,
            oem_root=config.oem_root,
            data_root=config.data_root,
            fallback_path=config.fallback_seed,
        )
        self.checksum_gate = ChecksumGate(self.source)
        self.state = StateStore(config.state_path)
        self.merger = ConflictMerger(config.persist_apns_for_plmn)

        self._db: Optional[DatabaseManager] = None
        self._seeded_on_open = False
        self._repo: Optional[ApnRepository] = None
        self._target_version = DATABASE_VERSION
        self.resolver: Optional[PreferredApnResolver] = None
        self.catalog: Optional[CatalogService] = None
        self.matcher: Optional[SimApnMatcher] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> "ApnEngine":
        with self._lock:
            if self._open:
                return self
            self.state.load()
            self._target_version = DATABASE_VERSION | max(self.source.public_version(), 0)
            self._db = DatabaseManager(self.config.db_path)
            self._repo = ApnRepository(self._db)
            self.resolver = PreferredApnResolver(self._repo, self.state, self._current_version)
            self.catalog = CatalogService(
                self._repo,
                self.merger,
                self.config.default_sub_id,
                lambda: self.state.managed_enforced,
            )
            self.matcher = SimApnMatcher(self._repo)
            self._open = True
            self._seeded_on_open = False
            try:
                self._prepare_database()
                self._check_build_id()
                if not self.checksum_gate.is_current(self.state.checksum):
                    self._update_apn_db()
            except BaseException:
                self._close_unlocked()
                raise
            logger.info("APN engine open at %s", self.config.db_path)
            return self

    def close(self) -> None:
        with self._lock:
            self._close_unlocked()

    def _close_unlocked(self) -> None:
        if self._db is not None:
            self._db.close()
        self._db = None
        self._repo = None
        self._open = False

    def __enter__(self) -> "ApnEngine":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise EngineClosedError("The APN engine is not open")

    @property
    def repository(self) -> ApnRepository:
        with self._lock:
            self._ensure_open()
            assert self._repo is not None
            return self._repo

    # ------------------------------------------------------------------
    # Start-up
    # ------------------------------------------------------------------
    def _prepare_database(self) -> None:
        try:
            self._create_or_migrate()
        except sqlite3.DatabaseError as exc:
            logger.error("Carriers database unusable (%s); attempting recovery", exc)
            assert self._db is not None
            self._db.close()
            recovery = RecoveryService(
                self.config.db_path,
                create_carriers_table,
                _insert_salvaged,
            )
            repaired = recovery.recover()
            if repaired:
                self._create_or_migrate()
            else:
                self._seed_fresh_table()

    def _create_or_migrate(self) -> None:
        assert self._db is not None
        conn = self._db.get_connection()
        stored = get_user_version(conn)
        target = self._target_version
        if stored == 0 or not table_exists(conn, CARRIERS_TABLE):
            if stored:
                logger.warning("Carriers table missing at version %#x; recreating it", stored)
            self._seed_fresh_table()
            return
        if stored < target:
            migrator = SchemaMigrator(
                self._db,
                self.merger,
                self.config.persist_apns_for_plmn,
                self._old_seed_rows,
            )
            rebuild = migrator.needs_rebuild(stored)
            if rebuild:
                # Row ids change in a rebuild; keep the preferred rows by content.
                self._resolver().invalidate_ids()
            result = migrator.migrate(stored, target)
            self.bus.publish(
                SchemaMigrated(
                    source="apnstore.engine",
                    from_version=result.from_version,
                    to_version=result.to_version,
                    rebuilt=result.rebuilt,
                )
            )
        elif stored > target:
            logger.warning(
                "Carriers database version %#x is newer than this engine (%#x)", stored, target
            )

    def _seed_fresh_table(self) -> None:
        assert self._db is not None
        self._seeded_on_open = True
        with self._db.transaction() as conn:
            if not table_exists(conn, CARRIERS_TABLE):
                create_carriers_table(conn)
            report = self._load_seed()
            set_user_version(conn, self._target_version)
        checksum = self.checksum_gate.compute()
        self.state.checksum = checksum
        self._publish_seed(report, checksum)

    def _old_seed_rows(self) -> Optional[List[Dict[str, Any]]]:
        document = _read_seed(self.source.load_old_snapshot)
        if document is None:
            return None
        rows = []
        for candidate in document.candidates:
            try:
                rows.append(normalize_candidate(candidate, self.config.default_sub_id))
            except (MalformedSeedRecordError, ValueError) as exc:
                logger.warning("Ignoring previous seed candidate: %s", exc)
        return rows

    def _check_build_id(self) -> None:
        build_id = self.config.build_id
        if not build_id:
            return
        if build_id != self.state.build_id and not self._seeded_on_open:
            logger.info("Build id changed from %s to %s", self.state.build_id, build_id)
            self._resolver().clear_all_ids()
            self._update_apn_db()
        self.state.build_id = build_id

    def _load_seed(self) -> SeedReport:
        loader = SeedLoader(self._repository(), self.merger, self.config.default_sub_id)
        return loader.load(_read_seed(self.source.load_fallback), _read_seed(self.source.load_override))

    def _update_apn_db(self) -> SeedReport:
        self._resolver().invalidate_ids()
        repo = self._repository()
        with repo.transaction():
            removed = self._catalog().delete_unedited()
            report = self._load_seed()
        logger.info("Reseeded carriers: removed %d unedited rows", removed)
        checksum = self.checksum_gate.compute()
        self.state.checksum = checksum
        self._publish_seed(report, checksum)
        self.bus.publish(ApnTableChanged(source="apnstore.engine", reason="update_db"))
        return report

    def _publish_seed(self, report: SeedReport, checksum: int) -> None:
        self.bus.publish(
            SeedLoaded(
                source="apnstore.engine",
                inserted=report.inserted,
                merged=report.merged,
                skipped=report.skipped,
                purged=report.purged,
                checksum=checksum,
            )
        )

    def _repository(self) -> ApnRepository:
        assert self._repo is not None
        return self._repo

    def _resolver(self) -> PreferredApnResolver:
        assert self.resolver is not None
        return self.resolver

    def _catalog(self) -> CatalogService:
        assert self.catalog is not None
        return self.catalog

    def _changed(self, reason: str, sub_id: Optional[int] = None) -> None:
        self.bus.publish(ApnTableChanged(source="apnstore.engine", reason=reason, sub_id=sub_id))

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------
    def _current_version(self) -> int:
        if self._db is None:
            return 0
        return get_user_version(self._db.get_connection())

    @_locked
    def database_version(self) -> int:
        return self._current_version()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    @_locked
    def query(
        self,
        filter_params: Optional[ApnFilter] = None,
        projection: Optional[Sequence[str]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        scope: QueryScope = QueryScope.ALL,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self._catalog().query(filter_params, projection, order, scope, limit)

    @_locked
    def get(self, row_id: int) -> Optional[Dict[str, Any]]:
        return self._repository().get(row_id)

    @_locked
    def insert(self, values: Mapping[str, Any]) -> int:
        row_id = self._catalog().insert(values)
        self._changed("insert")
        return row_id

    @_locked
    def bulk_insert(self, records: Iterable[Mapping[str, Any]]) -> int:
        created = self._catalog().bulk_insert(records)
        self._changed("bulk_insert")
        return created

    @_locked
    def insert_dpc(self, values: Mapping[str, Any]) -> Optional[int]:
        row_id = self._catalog().insert_dpc(values)
        if row_id is not None:
            self._changed("insert_dpc")
        return row_id

    @_locked
    def update(self, filter_params: Optional[ApnFilter], values: Mapping[str, Any]) -> int:
        count = self._catalog().update(filter_params, values)
        if count:
            self._changed("update")
        return count

    @_locked
    def update_by_id(self, row_id: int, values: Mapping[str, Any]) -> int:
        count = self._catalog().update_by_id(row_id, values)
        if count:
            self._changed("update")
        return count

    @_locked
    def update_dpc(self, row_id: int, values: Mapping[str, Any]) -> int:
        count = self._catalog().update_dpc(row_id, values)
        if count:
            self._changed("update_dpc")
        return count

    @_locked
    def delete(self, filter_params: Optional[ApnFilter] = None) -> int:
        count = self._catalog().delete(filter_params)
        if count:
            self._changed("delete")
        return count

    @_locked
    def delete_by_id(self, row_id: int) -> int:
        count = self._catalog().delete_by_id(row_id)
        if count:
            self._changed("delete")
        return count

    @_locked
    def delete_dpc(self, row_id: int) -> int:
        count = self._catalog().delete_dpc(row_id)
        if count:
            self._changed("delete_dpc")
        return count

    @_locked
    def delete_unedited(self, filter_params: Optional[ApnFilter] = None) -> int:
        self._resolver().invalidate_ids()
        count = self._catalog().delete_unedited(filter_params)
        if count:
            self._changed("delete")
        return count

    @_locked
    def set_current(self, numeric: str) -> int:
        count = self._catalog().set_current(numeric)
        self._changed("current")
        return count

    @_locked
    def sim_apn_list(self, sim: SimIdentity, order: Optional[Sequence[OrderBy]] = None) -> List[Dict[str, Any]]:
        assert self.matcher is not None
        return self.matcher.apn_list(sim, order)

    # ------------------------------------------------------------------
    # Preferred APN
    # ------------------------------------------------------------------
    @_locked
    def get_preferred(self, sub_id: int) -> int:
        return self._resolver().get_preferred(sub_id)

    @_locked
    def get_preferred_row(self, sub_id: int) -> Optional[Dict[str, Any]]:
        apn_id = self._resolver().get_preferred(sub_id)
        if apn_id == INVALID_APN_ID:
            return None
        return self._repository().get(apn_id)

    @_locked
    def set_preferred(self, sub_id: int, apn_id: Optional[int]) -> None:
        self._resolver().set_preferred(sub_id, apn_id)
        resolved = INVALID_APN_ID if apn_id is None else int(apn_id)
        self.bus.publish(PreferredApnChanged(source="apnstore.engine", sub_id=sub_id, apn_id=resolved))

    @_locked
    def clear_preferred(self, sub_id: int) -> None:
        self._resolver().clear_preferred(sub_id)
        self.bus.publish(PreferredApnChanged(source="apnstore.engine", sub_id=sub_id))

    @_locked
    def preferred_apn_set(self, sub_id: int) -> List[Dict[str, Any]]:
        return self._catalog().preferred_apn_set(self._resolver().preferred_apn_set_id(sub_id))

    # ------------------------------------------------------------------
    # Managed enforcement
    # ------------------------------------------------------------------
    @_locked
    def set_managed_enforced(self, enforced: bool) -> None:
        self.state.managed_enforced = enforced
        self._changed("enforce_managed")

    @_locked
    def is_managed_enforced(self) -> bool:
        return self.state.managed_enforced

    # ------------------------------------------------------------------
    # Reseeding
    # ------------------------------------------------------------------
    @_locked
    def update_apn_db(self) -> SeedReport:
        """Drop unedited rows and apply the seed again."""
        return self._update_apn_db()

    @_locked
    def restore_factory_defaults(self, sub_id: int, sim: Optional[SimIdentity] = None) -> SeedReport:
        """Delete rows, forget preferred APNs and reseed regardless of the checksum.

        With *sim*, only the rows of that SIM's operator are deleted: its
        MVNO rows when one of them matches the SIM, otherwise its plain rows.
        """
        repo = self._repository()
        resolver = self._resolver()
        with repo.transaction():
            removed = self._catalog().delete_for_restore(sim)
            report = self._load_seed()
        resolver.clear_all_ids()
        resolver.clear_preferred(sub_id)
        checksum = self.checksum_gate.compute()
        self.state.checksum = checksum
        logger.info("Restored factory APNs: removed %d rows", removed)
        self._publish_seed(report, checksum)
        self._changed("restore", sub_id)
        return report


__all__ = ["ApnEngine", "QueryScope"]
