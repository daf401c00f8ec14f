import logging
from typing import Any, Callable, Dict, Optional

from apnstore.config import INVALID_APN_ID, NO_APN_SET_ID
from apnstore.domain.models.apn import DELETED_STATES, UNIQUE_FIELDS
from apnstore.domain.models.query import ApnFilter
from apnstore.settings.manager import StateStore
from apnstore.store.repository import ApnRepository


def _live() -> ApnFilter:
    return ApnFilter().where_not_in("edited", [int(state) for state in DELETED_STATES])


class PreferredApnResolver:
    """Per-subscription preferred APN, robust to row ids changing.

    Two things are kept per subscription: a cached row id, and a snapshot
    of the preferred row's unique fields tagged with the database version
    it was taken at.  Ids do not survive a table rebuild; the snapshot
    does, and is used to find the row again.  A cached id pointing at a
    missing or deleted row, or cached under another database version, is
    checked against the snapshot before it is returned.
    """

    def __init__(
        self,
        repo: ApnRepository,
        state: StateStore,
        version_provider: Callable[[], int],
    ):
        self._repo = repo
        self._state = state
        self._version = version_provider
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Cached ids
    # ------------------------------------------------------------------
    def set_preferred(self, sub_id: int, apn_id: Optional[int], save_snapshot: bool = True) -> None:
        row_id = INVALID_APN_ID if apn_id is None else int(apn_id)
        self._state.set(f"preferred.{sub_id}", {"apn_id": row_id, "explicit_set_called": True})
        if not save_snapshot:
            return
        if row_id == INVALID_APN_ID:
            self._delete_snapshot(sub_id)
        else:
            self._save_snapshot(sub_id, row_id)

    def get_preferred(self, sub_id: int, check_snapshot: bool = True) -> int:
        entry = self._state.get(f"preferred.{sub_id}")
        apn_id = int(entry["apn_id"]) if entry else INVALID_APN_ID
        if apn_id != INVALID_APN_ID and not self._is_live(apn_id):
            self._logger.info("Preferred APN %s of subscription %s is gone", apn_id, sub_id)
            self._state.set(f"preferred.{sub_id}", {**entry, "apn_id": INVALID_APN_ID})
            apn_id = INVALID_APN_ID
        if not check_snapshot:
            return apn_id

        if apn_id != INVALID_APN_ID:
            if self._snapshot_outdated(sub_id):
                # Another schema version: trust the unique fields over the id.
                resolved = self._resolve_snapshot(sub_id)
                if resolved != INVALID_APN_ID:
                    apn_id = resolved
                self.set_preferred(sub_id, apn_id)
            return apn_id

        apn_id = self._resolve_snapshot(sub_id)
        if apn_id != INVALID_APN_ID:
            self.set_preferred(sub_id, apn_id, save_snapshot=False)
            self._state.set(f"snapshots.{sub_id}.version", self._version())
        return apn_id

    def _is_live(self, apn_id: int) -> bool:
        return self._repo.count(ApnFilter.by_id(apn_id).and_(_live())) == 1

    def explicit_set_called(self, sub_id: int) -> bool:
        entry = self._state.get(f"preferred.{sub_id}")
        return bool(entry and entry.get("explicit_set_called"))

    def clear_preferred(self, sub_id: int) -> None:
        self._state.remove(f"preferred.{sub_id}")
        self._delete_snapshot(sub_id)

    def clear_all_ids(self) -> None:
        """Forget every cached id; snapshots stay."""
        self._state.set("preferred", {})

    def invalidate_ids(self) -> None:
        """Snapshot every cached id, then forget the ids."""
        for key, entry in self._state.preferred_entries().items():
            apn_id = int(entry.get("apn_id", INVALID_APN_ID))
            if apn_id != INVALID_APN_ID:
                self._save_snapshot(int(key), apn_id)
        self.clear_all_ids()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def snapshot(self, sub_id: int) -> Optional[Dict[str, Any]]:
        return self._state.get(f"snapshots.{sub_id}")

    def preferred_apn_set_id(self, sub_id: int) -> int:
        snapshot = self.snapshot(sub_id)
        if not snapshot:
            return NO_APN_SET_ID
        value = snapshot["fields"].get("apn_set_id")
        return int(value) if value is not None else NO_APN_SET_ID

    def _snapshot_outdated(self, sub_id: int) -> bool:
        snapshot = self.snapshot(sub_id)
        return bool(snapshot) and snapshot["version"] != self._version()

    def _save_snapshot(self, sub_id: int, apn_id: int) -> None:
        row = self._repo.get(apn_id)
        if row is None:
            self._logger.info("No row %s to snapshot for subscription %s", apn_id, sub_id)
            return
        fields = {name: row.get(name) for name in UNIQUE_FIELDS}
        self._state.set(f"snapshots.{sub_id}", {"version": self._version(), "fields": fields})

    def _delete_snapshot(self, sub_id: int) -> None:
        self._state.remove(f"snapshots.{sub_id}")

    def _resolve_snapshot(self, sub_id: int) -> int:
        snapshot = self.snapshot(sub_id)
        if not snapshot:
            return INVALID_APN_ID
        ids = self._repo.find_ids_by_unique_key(snapshot["fields"], _live())
        if len(ids) != 1:
            self._logger.info(
                "Preferred APN snapshot for subscription %s matches %d rows", sub_id, len(ids)
            )
            return INVALID_APN_ID
        return ids[0]
