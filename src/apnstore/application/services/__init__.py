from .catalog_service import CatalogService, QueryScope
from .preferred_apn import PreferredApnResolver
from .sim_matching import SimApnMatcher, SimIdentity

__all__ = [
    "CatalogService",
    "PreferredApnResolver",
    "QueryScope",
    "SimApnMatcher",
    "SimIdentity",
]
