"""Radio technology bitmask conversions.

A record carries two encodings of the same capability set: the legacy
bearer bitmask, indexed by radio technology code, and the network-type
bitmask, indexed by network type code.  Bit ``n - 1`` stands for code ``n``
and ``0`` means "no restriction".
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, MutableMapping

from ..utils.logging import get_logger

logger = get_logger()

BEARER_BITMASK = "bearer_bitmask"
NETWORK_TYPE_BITMASK = "network_type_bitmask"


class RadioTech(IntEnum):
    UNKNOWN = 0
    GPRS = 1
    EDGE = 2
    UMTS = 3
    IS95A = 4
    IS95B = 5
    ONE_X_RTT = 6
    EVDO_0 = 7
    EVDO_A = 8
    HSDPA = 9
    HSUPA = 10
    HSPA = 11
    EVDO_B = 12
    EHRPD = 13
    LTE = 14
    HSPAP = 15
    GSM = 16
    TD_SCDMA = 17
    IWLAN = 18
    LTE_CA = 19
    NR = 20


class NetworkType(IntEnum):
    UNKNOWN = 0
    GPRS = 1
    EDGE = 2
    UMTS = 3
    CDMA = 4
    EVDO_0 = 5
    EVDO_A = 6
    ONE_X_RTT = 7
    HSDPA = 8
    HSUPA = 9
    HSPA = 10
    IDEN = 11
    EVDO_B = 12
    LTE = 13
    EHRPD = 14
    HSPAP = 15
    GSM = 16
    TD_SCDMA = 17
    IWLAN = 18
    LTE_CA = 19
    NR = 20


_RADIO_TO_NETWORK: Dict[RadioTech, NetworkType] = {
    RadioTech.GPRS: NetworkType.GPRS,
    RadioTech.EDGE: NetworkType.EDGE,
    RadioTech.UMTS: NetworkType.UMTS,
    RadioTech.IS95A: NetworkType.CDMA,
    RadioTech.IS95B: NetworkType.CDMA,
    RadioTech.ONE_X_RTT: NetworkType.ONE_X_RTT,
    RadioTech.EVDO_0: NetworkType.EVDO_0,
    RadioTech.EVDO_A: NetworkType.EVDO_A,
    RadioTech.HSDPA: NetworkType.HSDPA,
    RadioTech.HSUPA: NetworkType.HSUPA,
    RadioTech.HSPA: NetworkType.HSPA,
    RadioTech.EVDO_B: NetworkType.EVDO_B,
    RadioTech.EHRPD: NetworkType.EHRPD,
    RadioTech.LTE: NetworkType.LTE,
    RadioTech.HSPAP: NetworkType.HSPAP,
    RadioTech.GSM: NetworkType.GSM,
    RadioTech.TD_SCDMA: NetworkType.TD_SCDMA,
    RadioTech.IWLAN: NetworkType.IWLAN,
    RadioTech.LTE_CA: NetworkType.LTE_CA,
    RadioTech.NR: NetworkType.NR,
}


def radio_tech_to_network_type(tech: int) -> NetworkType:
    try:
        return _RADIO_TO_NETWORK.get(RadioTech(tech), NetworkType.UNKNOWN)
    except ValueError:
        return NetworkType.UNKNOWN


def bitmask_for_tech(tech: int) -> int:
    if tech >= 1:
        return 1 << (tech - 1)
    return 0


def bitmask_has_tech(bitmask: int, tech: int) -> bool:
    if bitmask == 0:
        return True
    if tech >= 1:
        return (bitmask & (1 << (tech - 1))) != 0
    return False


def bitmask_from_string(value: str) -> int:
    """Parse a ``"1|2|3"`` technology list into a bitmask."""

    bitmask = 0
    for part in value.split("|"):
        part = part.strip()
        if not part:
            continue
        bitmask |= bitmask_for_tech(int(part))
    return bitmask


def network_type_to_bearer_bitmask(network_type_bitmask: int) -> int:
    if network_type_bitmask == 0:
        return 0
    bearer_bitmask = 0
    for tech in RadioTech:
        if tech is RadioTech.UNKNOWN:
            continue
        if bitmask_has_tech(network_type_bitmask, radio_tech_to_network_type(tech)):
            bearer_bitmask |= bitmask_for_tech(tech)
    return bearer_bitmask


def bearer_to_network_type_bitmask(bearer_bitmask: int) -> int:
    if bearer_bitmask == 0:
        return 0
    network_type_bitmask = 0
    for tech in RadioTech:
        if tech is RadioTech.UNKNOWN:
            continue
        if bitmask_has_tech(bearer_bitmask, tech):
            network_type_bitmask |= bitmask_for_tech(radio_tech_to_network_type(tech))
    return network_type_bitmask


def _as_bitmask(value: Any) -> int:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0
        if "|" in value:
            return bitmask_from_string(value)
    return int(value)


def sync_bitmasks(values: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Keep the two bitmask encodings in step before a write.

    A supplied network-type bitmask wins and the bearer bitmask is derived
    from it; otherwise a supplied bearer bitmask derives the network-type
    bitmask.  *values* is updated in place and returned.
    """

    if values.get(NETWORK_TYPE_BITMASK) is not None:
        network_type = _as_bitmask(values[NETWORK_TYPE_BITMASK])
        converted = network_type_to_bearer_bitmask(network_type)
        supplied = values.get(BEARER_BITMASK)
        if supplied is not None and _as_bitmask(supplied) != converted:
            logger.error("Network type bitmask and bearer bitmask are not compatible.")
        values[NETWORK_TYPE_BITMASK] = network_type
        values[BEARER_BITMASK] = converted
    elif values.get(BEARER_BITMASK) is not None:
        bearer = _as_bitmask(values[BEARER_BITMASK])
        values[BEARER_BITMASK] = bearer
        values[NETWORK_TYPE_BITMASK] = bearer_to_network_type_bitmask(bearer)
    return values


__all__ = [
    "BEARER_BITMASK",
    "NETWORK_TYPE_BITMASK",
    "NetworkType",
    "RadioTech",
    "bearer_to_network_type_bitmask",
    "bitmask_for_tech",
    "bitmask_from_string",
    "bitmask_has_tech",
    "network_type_to_bearer_bitmask",
    "radio_tech_to_network_type",
    "sync_bitmasks",
]
