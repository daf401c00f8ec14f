"""Edit provenance transitions.

Provenance only moves away from ``UNEDITED``.  The two places it moves
back are explicit: the post-seed settlement (``..._BUT_PRESENT_IN_XML``
back to the plain deleted state) and a rebuild merge whose caller passes
``allow_downgrade=True``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from ..domain.models.apn import EditProvenance

_SEED_ESCALATION: Dict[EditProvenance, EditProvenance] = {
    EditProvenance.USER_DELETED: EditProvenance.USER_DELETED_BUT_PRESENT_IN_XML,
    EditProvenance.CARRIER_DELETED: EditProvenance.CARRIER_DELETED_BUT_PRESENT_IN_XML,
}

# Applied once the full seed pass is done.
SEED_SETTLEMENT: Tuple[Tuple[EditProvenance, EditProvenance], ...] = (
    (EditProvenance.USER_DELETED_BUT_PRESENT_IN_XML, EditProvenance.USER_DELETED),
    (EditProvenance.CARRIER_DELETED_BUT_PRESENT_IN_XML, EditProvenance.CARRIER_DELETED),
)

# Rows still in one of these states after a seed pass are gone from the seed.
PURGED_AFTER_SEED: Tuple[EditProvenance, ...] = (
    EditProvenance.USER_DELETED,
    EditProvenance.CARRIER_DELETED,
)

# States that a delete physically removes rather than marks.
PHYSICALLY_DELETABLE: Tuple[EditProvenance, ...] = (
    EditProvenance.USER_EDITED,
    EditProvenance.CARRIER_EDITED,
)


def coerce(value: Any) -> Optional[EditProvenance]:
    if value is None or value == "":
        return None
    return EditProvenance(int(value))


def escalate_for_seed(existing: EditProvenance) -> EditProvenance:
    """A deleted row whose seed equivalent reappears is marked present."""

    return _SEED_ESCALATION.get(existing, existing)


def may_overwrite(existing: EditProvenance, incoming: Optional[EditProvenance]) -> bool:
    """Whether *incoming* may replace the provenance and fields of *existing*."""

    if incoming is None or incoming is EditProvenance.UNEDITED:
        return not existing.is_protected
    return True


def merged_provenance(
    existing: EditProvenance,
    incoming: Optional[EditProvenance],
    *,
    on_upgrade: bool = False,
    allow_downgrade: bool = False,
) -> Optional[EditProvenance]:
    """Return the provenance to write, or ``None`` to keep *existing*.

    During a rebuild the incoming value only lands when the caller asked
    for it explicitly; an absent or ``UNEDITED`` value never downgrades.
    """

    if incoming is None:
        return None
    if on_upgrade and not allow_downgrade:
        return None
    if incoming is EditProvenance.UNEDITED and existing.is_protected and not allow_downgrade:
        return None
    if incoming is existing:
        return None
    return incoming


__all__ = [
    "PHYSICALLY_DELETABLE",
    "PURGED_AFTER_SEED",
    "SEED_SETTLEMENT",
    "coerce",
    "escalate_for_seed",
    "may_overwrite",
    "merged_provenance",
]
