import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from apnstore.config import UNKNOWN_CARRIER_ID
from apnstore.domain.models.apn import DELETED_STATES
from apnstore.domain.models.query import ApnFilter, OrderBy
from apnstore.store.repository import ApnRepository

MVNO_SPN = "spn"
MVNO_IMSI = "imsi"
MVNO_GID = "gid"
MVNO_ICCID = "iccid"


@dataclass(frozen=True)
class SimIdentity:
    """What the engine knows about an inserted SIM."""

    sim_operator: str
    carrier_id: int = UNKNOWN_CARRIER_ID
    mno_carrier_id: int = UNKNOWN_CARRIER_ID
    spn: str = ""
    imsi: str = ""
    gid1: str = ""
    iccid: str = ""


def imsi_matches(pattern: str, imsi: str) -> bool:
    """Prefix match where ``x`` in *pattern* matches any digit."""
    if not pattern or len(pattern) > len(imsi):
        return False
    for expected, actual in zip(pattern, imsi):
        if expected in "xX" or expected == actual:
            continue
        return False
    return True


def mvno_matches(sim: SimIdentity, mvno_type: Optional[str], match_data: Optional[str]) -> bool:
    mvno_type = (mvno_type or "").lower()
    match_data = match_data or ""
    if mvno_type == MVNO_SPN:
        return bool(sim.spn) and sim.spn.lower() == match_data.lower()
    if mvno_type == MVNO_IMSI:
        return imsi_matches(match_data, sim.imsi)
    if mvno_type == MVNO_GID:
        return (
            bool(match_data)
            and len(sim.gid1) >= len(match_data)
            and sim.gid1[: len(match_data)].lower() == match_data.lower()
        )
    if mvno_type == MVNO_ICCID:
        if not sim.iccid:
            return False
        return any(entry and sim.iccid.startswith(entry) for entry in match_data.split(","))
    return False


class SimApnMatcher:
    """APN rows usable with a given SIM.

    Rows tied to the SIM's own carrier (by carrier id, or by an MVNO rule
    on the operator's numeric) win.  Only when there are none do rows of
    the parent network operator apply.
    """

    def __init__(self, repo: ApnRepository):
        self._repo = repo
        self._logger = logging.getLogger(__name__)

    def apn_list(
        self,
        sim: SimIdentity,
        order: Optional[Sequence[OrderBy]] = None,
    ) -> List[Dict[str, Any]]:
        options = [ApnFilter().where("numeric", sim.sim_operator)]
        for carrier_id in (sim.carrier_id, sim.mno_carrier_id):
            if carrier_id != UNKNOWN_CARRIER_ID:
                options.append(ApnFilter().where("carrier_id", carrier_id))
        candidates = ApnFilter().any_of(*options)
        candidates.where_not_in("edited", [int(state) for state in DELETED_STATES])
        rows = self._repo.query(candidates, order=order)

        current: List[Dict[str, Any]] = []
        parent: List[Dict[str, Any]] = []
        for row in rows:
            carrier_id = row.get("carrier_id")
            numeric = row.get("numeric") or ""
            if sim.carrier_id != UNKNOWN_CARRIER_ID and carrier_id == sim.carrier_id:
                current.append(row)
            elif numeric and mvno_matches(sim, row.get("mvno_type"), row.get("mvno_match_data")):
                current.append(row)
            elif sim.mno_carrier_id != UNKNOWN_CARRIER_ID and carrier_id == sim.mno_carrier_id:
                parent.append(row)
            elif numeric:
                parent.append(row)

        if current:
            self._logger.debug("Matched %d APNs on SIM carrier", len(current))
            return current
        if parent:
            self._logger.debug("Matched %d APNs on parent operator", len(parent))
            return parent
        self._logger.debug("No APN matches SIM %s", sim.sim_operator)
        return []
