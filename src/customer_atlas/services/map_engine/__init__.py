"""Map rendering engines."""

from .base import ClusterConfig, MapEngine, MapEngineError, MapEvent
from .local import LocalMapEngine

__all__ = ["ClusterConfig", "LocalMapEngine", "MapEngine", "MapEngineError", "MapEvent"]
