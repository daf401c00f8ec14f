"""Engine configuration and persisted state."""

from .config import EngineConfig, load_engine_config
from .manager import StateStore

__all__ = ["EngineConfig", "StateStore", "load_engine_config"]
