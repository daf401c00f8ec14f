"""Reconciling APN catalog with seed loading and schema migration."""

from .application.services.catalog_service import QueryScope
from .application.services.sim_matching import SimIdentity
from .domain.models import ApnFilter, EditProvenance, OwnedBy, OrderBy
from .engine import ApnEngine
from .settings import EngineConfig, load_engine_config

__all__ = [
    "ApnEngine",
    "ApnFilter",
    "EditProvenance",
    "EngineConfig",
    "OrderBy",
    "OwnedBy",
    "QueryScope",
    "SimIdentity",
    "load_engine_config",
]

__version__ = "0.1.0"
