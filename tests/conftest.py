import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from apnstore.settings.config import EngineConfig
from apnstore.store.engine import DatabaseManager
from apnstore.store.repository import ApnRepository
from apnstore.store.schema import create_carriers_table
from apnstore.utils.jsonio import write_json


def apn(numeric: str = "310260", apn_name: str = "fast.net", **fields: Any) -> Dict[str, Any]:
    """Build a seed candidate for *numeric*."""
    candidate: Dict[str, Any] = {
        "carrier": fields.pop("carrier", f"Carrier {numeric}"),
        "mcc": numeric[:3],
        "mnc": numeric[3:],
        "apn": apn_name,
    }
    candidate.update(fields)
    return candidate


def write_seed(path: Path, apns: Iterable[Dict[str, Any]], version: int = 7) -> Path:
    write_json(path, {"version": version, "apns": list(apns)})
    return path


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / "carriers.db")
    with manager.transaction() as conn:
        create_carriers_table(conn)
    yield manager
    manager.close()


@pytest.fixture
def repo(db):
    return ApnRepository(db)


@pytest.fixture
def seed_path(tmp_path):
    return tmp_path / "seed" / "apns-full-conf.json"


@pytest.fixture
def make_config(tmp_path, seed_path):
    def factory(
        apns: Optional[Iterable[Dict[str, Any]]] = None,
        version: int = 7,
        **overrides: Any,
    ) -> EngineConfig:
        if apns is not None:
            write_seed(seed_path, apns, version)
        overrides.setdefault("fallback_seed", seed_path)
        return EngineConfig.for_directory(tmp_path / "home", **overrides)

    return factory
