"""Conflict merge between an existing row and a colliding candidate.

When a write collides with a row on the unique fields the two are
combined rather than one discarding the other:

* purpose lists are unioned case-insensitively, old entries first, and an
  empty list (or ``*``) on either side means "every purpose" and wins;
* bitmasks are ORed, except that ``0`` ("no restriction") wins;
* the remaining fields come from the candidate, unless the candidate is
  ``UNEDITED`` and the existing row carries a user or carrier action;
* on an upgrade merge only the purpose list and bitmasks are written.

For operators on the tethering allow-list a candidate whose purposes
differ from the existing row only by ``dun`` is kept as a separate row on
its own modem profile instead of being folded in.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from ..config import ALL_APN_TYPES, TETHER_APN_TYPE, TETHER_PROFILE_ID
from ..domain.models.apn import ID, EditProvenance, normalize_values, split_types
from ..errors import ApnStoreError, WriteFailedError
from ..store.queries import OnConflict
from ..utils.logging import get_logger
from . import provenance
from .bitmask import BEARER_BITMASK, NETWORK_TYPE_BITMASK, sync_bitmasks

if TYPE_CHECKING:
    from ..store.repository import ApnRepository

logger = get_logger()

_BITMASK_FIELDS = (BEARER_BITMASK, NETWORK_TYPE_BITMASK)


@dataclass
class MergePlan:
    """Writes needed to resolve one collision.

    ``updates`` go to the existing row ``target_id``.  ``insert`` is set
    when the candidate is stored as its own row.
    """

    target_id: int
    updates: Dict[str, Any] = field(default_factory=dict)
    insert: Optional[Dict[str, Any]] = None
    split: bool = False


@dataclass(frozen=True)
class MergeOutcome:
    row_id: int
    inserted_id: Optional[int] = None
    split: bool = False


def merge_types(old_type: Optional[str], new_type: Optional[str]) -> str:
    """Union two purpose lists, lower-cased, old entries first."""

    old_types = [t.lower() for t in split_types(old_type)]
    new_types = [t.lower() for t in split_types(new_type)]
    if not old_types or not new_types:
        return ""
    if ALL_APN_TYPES in old_types or ALL_APN_TYPES in new_types:
        return ALL_APN_TYPES
    merged: List[str] = []
    for item in old_types + new_types:
        if item not in merged:
            merged.append(item)
    return ",".join(merged)


def merge_bitmask(old: Any, new: Any) -> int:
    old_mask = int(old or 0)
    new_mask = int(new or 0)
    if old_mask == new_mask:
        return old_mask
    if old_mask == 0 or new_mask == 0:
        return 0
    return old_mask | new_mask


def _lower_types(value: Optional[str]) -> List[str]:
    return [t.lower() for t in split_types(value)]


class ConflictMerger:
    """Plans and applies merges.

    Args:
        tether_plmns: Operator numerics for which a tethering-only
            difference keeps two rows instead of merging.
    """

    def __init__(self, tether_plmns: Iterable[str] = ()) -> None:
        self.tether_plmns = frozenset(str(p).lower() for p in tether_plmns)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    def plan(
        self,
        existing: Mapping[str, Any],
        incoming: Mapping[str, Any],
        *,
        on_upgrade: bool = False,
        allow_provenance_downgrade: bool = False,
        provenance_override: Optional[EditProvenance] = None,
    ) -> MergePlan:
        """Work out the writes that merge *incoming* into *existing*.

        Args:
            existing: The stored row, including ``_id``.
            incoming: The colliding candidate values.
            on_upgrade: Rebuild merge; only purposes and bitmasks are written.
            allow_provenance_downgrade: Let a rebuild merge write the
                candidate's provenance even when it is lower.
            provenance_override: Provenance to store on the merged row
                regardless of the candidate's own.
        """
        values = normalize_values({k: v for k, v in incoming.items() if k != ID})
        plan = MergePlan(target_id=int(existing[ID]))

        new_type = values.get("type")
        if new_type is not None:
            old_type = existing.get("type") or ""
            if old_type.lower() != new_type.lower():
                split = self._plan_split(existing, values)
                if split is not None:
                    return split
                values["type"] = merge_types(old_type, new_type)
            plan.updates["type"] = values["type"]

        for name in _BITMASK_FIELDS:
            if values.get(name) is None:
                continue
            values[name] = merge_bitmask(existing.get(name), values[name])
            plan.updates[name] = values[name]
        if all(plan.updates.get(name) is not None for name in _BITMASK_FIELDS):
            sync_bitmasks(plan.updates)
            for name in _BITMASK_FIELDS:
                values[name] = plan.updates[name]

        existing_prov = provenance.coerce(existing.get("edited")) or EditProvenance.UNEDITED
        incoming_prov = provenance.coerce(values.pop("edited", None))

        if not on_upgrade:
            if provenance.may_overwrite(existing_prov, incoming_prov):
                plan.updates = {**values, **plan.updates}
            else:
                logger.debug("Row %s is %s; keeping its fields", plan.target_id, existing_prov.name)

        if provenance_override is not None:
            if provenance_override is not existing_prov:
                plan.updates["edited"] = int(provenance_override)
        else:
            merged = provenance.merged_provenance(
                existing_prov,
                incoming_prov,
                on_upgrade=on_upgrade,
                allow_downgrade=allow_provenance_downgrade,
            )
            if merged is not None:
                plan.updates["edited"] = int(merged)
        return plan

    def _plan_split(
        self,
        existing: Mapping[str, Any],
        values: Dict[str, Any],
    ) -> Optional[MergePlan]:
        numeric = str(values.get("numeric") or "").lower()
        if not numeric or numeric not in self.tether_plmns:
            return None

        old_types = _lower_types(existing.get("type"))
        new_types = _lower_types(values.get("type"))
        dun_in_old = TETHER_APN_TYPE in old_types
        if dun_in_old == (TETHER_APN_TYPE in new_types):
            return None
        with_dun, without_dun = (old_types, new_types) if dun_in_old else (new_types, old_types)
        rest = [t for t in with_dun if t != TETHER_APN_TYPE]
        if rest and set(rest) != set(without_dun):
            return None
        if not without_dun:
            return None
        if int(existing.get("profile_id") or 0) != 0:
            return None

        target_id = int(existing[ID])
        if dun_in_old and rest:
            # The stored row already covers the candidate's purposes.
            return MergePlan(target_id, {"type": ",".join(rest)}, split=True)
        candidate = dict(values)
        if dun_in_old:
            # The stored row is tethering-only: it moves to the tether profile.
            return MergePlan(target_id, {"profile_id": TETHER_PROFILE_ID}, insert=candidate, split=True)
        candidate["profile_id"] = TETHER_PROFILE_ID
        return MergePlan(target_id, insert=candidate, split=True)

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------
    def apply(self, repo: "ApnRepository", plan: MergePlan) -> MergeOutcome:
        """Write *plan* through *repo* inside one transaction.

        Raises:
            WriteFailedError: When any of the writes fails.
        """
        inserted_id: Optional[int] = None
        try:
            with repo.transaction():
                if plan.updates:
                    # A collision fails the merge; the colliding row is left alone.
                    repo.update_row(plan.target_id, plan.updates)
                if plan.insert is not None:
                    inserted_id = repo.insert(plan.insert, OnConflict.REPLACE)
        except (ApnStoreError, sqlite3.Error) as exc:
            if isinstance(exc, WriteFailedError):
                raise
            raise WriteFailedError(f"Merge into row {plan.target_id} failed: {exc}") from exc
        if plan.split:
            logger.info("Kept tethering row separate from row %s", plan.target_id)
        return MergeOutcome(plan.target_id, inserted_id, plan.split)

    def merge(
        self,
        repo: "ApnRepository",
        existing: Mapping[str, Any],
        incoming: Mapping[str, Any],
        **options: Any,
    ) -> MergeOutcome:
        return self.apply(repo, self.plan(existing, incoming, **options))


__all__ = [
    "ConflictMerger",
    "MergeOutcome",
    "MergePlan",
    "merge_bitmask",
    "merge_types",
]
