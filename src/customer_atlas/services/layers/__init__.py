"""Per-product map layers, clustering and click interactions."""

from .expansion import ClusterExpansion, ExpansionState, InvalidTransitionError
from .manager import (
    OTHER_LAYER,
    ClusterSelection,
    LayerManager,
    LayerSpec,
    LocationSelection,
    MapNotReadyError,
    MapState,
    PointSelection,
    partition_features,
    resolve_click,
)

__all__ = [
    "OTHER_LAYER",
    "ClusterExpansion",
    "ClusterSelection",
    "ExpansionState",
    "InvalidTransitionError",
    "LayerManager",
    "LayerSpec",
    "LocationSelection",
    "MapNotReadyError",
    "MapState",
    "PointSelection",
    "partition_features",
    "resolve_click",
]
