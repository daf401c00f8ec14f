import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from apnstore.config import INVALID_SUBSCRIPTION_ID, NO_APN_SET_ID
from apnstore.core import provenance
from apnstore.core.bitmask import sync_bitmasks
from apnstore.core.merge import ConflictMerger
from apnstore.domain.models.apn import (
    DELETED_STATES,
    ID,
    EditProvenance,
    OwnedBy,
    normalize_values,
)
from apnstore.domain.models.query import ApnFilter, Op, OrderBy
from apnstore.errors import ConflictError
from apnstore.store.queries import OnConflict
from apnstore.store.repository import ApnRepository

from .sim_matching import SimIdentity, mvno_matches


class QueryScope(str, Enum):
    ALL = "all"
    DPC = "dpc"
    FILTERED = "filtered"


def _non_dpc(filter_params: Optional[ApnFilter]) -> ApnFilter:
    return (filter_params or ApnFilter()).and_(ApnFilter().where_not("owned_by", int(OwnedBy.DPC)))


def _dpc_only(filter_params: Optional[ApnFilter]) -> ApnFilter:
    return (filter_params or ApnFilter()).and_(ApnFilter().where("owned_by", int(OwnedBy.DPC)))


_PHYSICAL = [int(state) for state in provenance.PHYSICALLY_DELETABLE]
_DELETED = [int(state) for state in DELETED_STATES]


class CatalogService:
    """
    Read and write operations on the APN catalog as seen by callers.
    Rows owned by device policy are kept apart from everybody else's, and
    deletes of seed rows are recorded rather than carried out so a reseed
    does not bring them back.
    """

    def __init__(
        self,
        repo: ApnRepository,
        merger: ConflictMerger,
        default_sub_id: int = INVALID_SUBSCRIPTION_ID,
        managed_enforced: Callable[[], bool] = lambda: False,
    ):
        self._repo = repo
        self._merger = merger
        self._default_sub_id = default_sub_id
        self._managed_enforced = managed_enforced
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def scoped_filter(self, filter_params: Optional[ApnFilter], scope: QueryScope) -> ApnFilter:
        if scope is QueryScope.DPC or (scope is QueryScope.FILTERED and self._managed_enforced()):
            scoped = _dpc_only(filter_params)
        else:
            scoped = _non_dpc(filter_params)
        scoped.where_not_in("edited", _DELETED)
        return scoped

    def query(
        self,
        filter_params: Optional[ApnFilter] = None,
        projection: Optional[Sequence[str]] = None,
        order: Optional[Sequence[OrderBy]] = None,
        scope: QueryScope = QueryScope.ALL,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self._repo.query(self.scoped_filter(filter_params, scope), projection, order, limit)

    def preferred_apn_set(self, apn_set_id: int) -> List[Dict[str, Any]]:
        filter_params = None
        if apn_set_id != NO_APN_SET_ID:
            filter_params = ApnFilter().where("apn_set_id", apn_set_id)
        return self.query(filter_params)

    # ------------------------------------------------------------------
    # Inserts
    # ------------------------------------------------------------------
    def _prepare(self, values: Mapping[str, Any], owner: OwnedBy) -> Dict[str, Any]:
        prepared = normalize_values({k: v for k, v in values.items() if k != ID})
        if prepared.get("edited") is None:
            prepared["edited"] = int(EditProvenance.CARRIER_EDITED)
        prepared["owned_by"] = int(owner)
        if prepared.get("sub_id") is None:
            prepared["sub_id"] = self._default_sub_id
        sync_bitmasks(prepared)
        return prepared

    def insert(self, values: Mapping[str, Any]) -> int:
        """Insert a row; a collision merges into the existing row instead.

        Returns:
            The id of the new row, or of the row merged into.
        """
        row_id, _created = self._insert_one(self._prepare(values, OwnedBy.OTHERS))
        return row_id

    def _insert_one(self, prepared: Dict[str, Any]):
        try:
            return self._repo.insert(prepared), True
        except ConflictError as exc:
            self._logger.info("Insert collides with row %s; merging", exc.existing[ID])
            outcome = self._merger.merge(self._repo, exc.existing, prepared)
            return outcome.inserted_id or outcome.row_id, outcome.inserted_id is not None

    def bulk_insert(self, records: Iterable[Mapping[str, Any]]) -> int:
        created = 0
        with self._repo.transaction():
            for values in records:
                _row_id, was_created = self._insert_one(self._prepare(values, OwnedBy.OTHERS))
                if was_created:
                    created += 1
        return created

    def insert_dpc(self, values: Mapping[str, Any]) -> Optional[int]:
        prepared = self._prepare(values, OwnedBy.DPC)
        prepared["user_editable"] = 0
        return self._repo.insert(prepared, OnConflict.IGNORE)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def _prepare_update(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        prepared = normalize_values({k: v for k, v in values.items() if k != ID})
        if prepared.get("edited") is None:
            prepared["edited"] = int(EditProvenance.CARRIER_EDITED)
        prepared.pop("owned_by", None)
        sync_bitmasks(prepared)
        return prepared

    def update(self, filter_params: Optional[ApnFilter], values: Mapping[str, Any]) -> int:
        return self._repo.update(_non_dpc(filter_params), self._prepare_update(values), OnConflict.REPLACE)

    def update_by_id(self, row_id: int, values: Mapping[str, Any]) -> int:
        """Update one row; a collision folds it into the colliding row.

        The updated row is deleted after the merge, so the colliding row is
        the one that survives.
        """
        prepared = self._prepare_update(values)
        with self._repo.transaction():
            try:
                return self._repo.update(_non_dpc(ApnFilter.by_id(row_id)), prepared)
            except ConflictError as exc:
                current = self._repo.get(row_id)
                if current is None or exc.existing is None:
                    raise
                incoming = {k: v for k, v in current.items() if k != ID}
                incoming.update(prepared)
                self._merger.merge(self._repo, exc.existing, incoming)
                self._repo.delete(ApnFilter.by_id(row_id))
                self._logger.info("Row %s merged into row %s", row_id, exc.existing[ID])
                return 1

    def update_dpc(self, row_id: int, values: Mapping[str, Any]) -> int:
        prepared = self._prepare_update(values)
        return self._repo.update(_dpc_only(ApnFilter.by_id(row_id)), prepared, OnConflict.IGNORE)

    def set_current(self, numeric: str) -> int:
        with self._repo.transaction():
            self._repo.update(ApnFilter().where_op("current", Op.NOT_NULL), {"current": None})
            return self._repo.update(ApnFilter().where("numeric", numeric), {"current": 1})

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------
    def delete(self, filter_params: Optional[ApnFilter] = None) -> int:
        """Delete rows, keeping a marker for rows the seed would recreate."""
        scoped = _non_dpc(filter_params)
        with self._repo.transaction():
            count = self._repo.delete(scoped.and_(ApnFilter().where_in("edited", _PHYSICAL)))
            count += self._repo.update(
                scoped.and_(ApnFilter().where_not_in("edited", _PHYSICAL + _DELETED)),
                {"edited": int(EditProvenance.USER_DELETED)},
            )
        return count

    def delete_by_id(self, row_id: int) -> int:
        return self.delete(ApnFilter.by_id(row_id))

    def delete_dpc(self, row_id: int) -> int:
        return self._repo.delete(_dpc_only(ApnFilter.by_id(row_id)))

    def delete_unedited(self, filter_params: Optional[ApnFilter] = None) -> int:
        scoped = _non_dpc(filter_params).where("edited", int(EditProvenance.UNEDITED))
        return self._repo.delete(scoped)

    def restore_filter(self, sim: Optional[SimIdentity]) -> ApnFilter:
        """Rows a factory restore removes, for all operators or one SIM's."""
        if sim is None:
            return _non_dpc(None)
        rows = self._repo.query(
            ApnFilter().where("numeric", sim.sim_operator),
            projection=["mvno_type", "mvno_match_data"],
            order=[OrderBy("name")],
        )
        for row in rows:
            mvno_type = row.get("mvno_type")
            match_data = row.get("mvno_match_data")
            if mvno_type and match_data and mvno_matches(sim, mvno_type, match_data):
                return _non_dpc(
                    ApnFilter()
                    .where("numeric", sim.sim_operator)
                    .where("mvno_type", mvno_type)
                    .where("mvno_match_data", match_data)
                )
        plain = ApnFilter().where("numeric", sim.sim_operator).any_of(
            ApnFilter().where("mvno_type", ""),
            ApnFilter().where("mvno_match_data", ""),
        )
        return _non_dpc(plain)

    def delete_for_restore(self, sim: Optional[SimIdentity] = None) -> int:
        return self._repo.delete(self.restore_filter(sim))
