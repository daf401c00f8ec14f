"""Default configuration values for apnstore."""

from __future__ import annotations

from typing import Final

# The on-disk schema version is ``ENGINE_VERSION << 16`` combined with the
# public version of the fallback seed document.  Bump ``ENGINE_VERSION`` and
# add a ladder step in ``store.migrations`` whenever the table layout changes.
ENGINE_VERSION: Final[int] = 31
DATABASE_VERSION: Final[int] = ENGINE_VERSION << 16

# Every historic ladder step was gated on seed public version 6.
LADDER_SEED_VERSION: Final[int] = 6

DATABASE_NAME: Final[str] = "telephony.db"
STATE_FILE_NAME: Final[str] = "apnstore-state.json"
CONFIG_FILE_NAME: Final[str] = "apnstore.json"

CARRIERS_TABLE: Final[str] = "carriers"
CARRIERS_TABLE_TMP: Final[str] = "carriers_tmp"

# Seed source locations, relative to the configured roots.  Later entries
# override earlier ones when the file exists.
PARTNER_APNS_PATH: Final[str] = "etc/apns-conf.json"
OEM_APNS_PATH: Final[str] = "telephony/apns-conf.json"
OTA_UPDATED_APNS_PATH: Final[str] = "misc/apns/apns-conf.json"
OLD_APNS_PATH: Final[str] = "etc/old-apns-conf.json"

DEFAULT_PROTOCOL: Final[str] = "IP"
DEFAULT_ROAMING_PROTOCOL: Final[str] = "IP"

INVALID_APN_ID: Final[int] = -1
INVALID_SUBSCRIPTION_ID: Final[int] = -1
UNKNOWN_CARRIER_ID: Final[int] = -1
NO_APN_SET_ID: Final[int] = 0
DEFAULT_CHECKSUM: Final[int] = -1

# Modem profile slot given to a tethering-only row split off by the merge.
TETHER_PROFILE_ID: Final[int] = 1
TETHER_APN_TYPE: Final[str] = "dun"
ALL_APN_TYPES: Final[str] = "*"

SQLITE_TIMEOUT_SEC: Final[float] = 10.0
HASH_CHUNK_SIZE: Final[int] = 1024 * 1024
