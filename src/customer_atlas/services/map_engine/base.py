"""Contract for the rendering engine that displays clustered customer layers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Sequence

from ...models.domain import GeoPoint

LayerKind = Literal["clusters", "points"]
EventHandler = Callable[["MapEvent"], Any]
ClusterLeavesCallback = Callable[[Optional[Exception], Optional[list[dict]]], None]
ExpansionZoomCallback = Callable[[Optional[Exception], Optional[float]], None]


class MapEngineError(RuntimeError):
    """Raised (or passed to callbacks) when the engine cannot satisfy a request."""


@dataclass(slots=True, frozen=True)
class ClusterConfig:
    cluster: bool = True
    cluster_radius: int = 25
    cluster_max_zoom: int = 16


@dataclass(slots=True)
class MapEvent:
    type: str
    point: Optional[GeoPoint] = None
    layer_id: Optional[str] = None
    features: list[dict] = field(default_factory=list)
    data: dict = field(default_factory=dict)


class MapEngine(ABC):
    """Operations the layer manager needs from a map renderer.

    Engines own their feature buffers; callers replace a source's data
    wholesale with :meth:`set_source_data`.
    """

    @property
    @abstractmethod
    def is_attached(self) -> bool:
        """True once the rendering surface exists."""

    @property
    @abstractmethod
    def loaded(self) -> bool:
        """True once the engine has fired its ``load`` event."""

    @property
    @abstractmethod
    def zoom(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def create_source(self, name: str, cluster_config: ClusterConfig) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_layer(self, layer_id: str, source: str, *, kind: LayerKind) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_source_data(self, name: str, collection: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    def query_rendered_features(self, point: GeoPoint, layers: Sequence[str] | None = None) -> list[dict]:
        raise NotImplementedError

    @abstractmethod
    def get_cluster_leaves(
        self,
        cluster_id: int,
        point_count: int,
        callback: ClusterLeavesCallback,
        offset: int = 0,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_cluster_expansion_zoom(self, cluster_id: int, callback: ExpansionZoomCallback) -> None:
        raise NotImplementedError

    @abstractmethod
    def fly_to(self, *, center: GeoPoint, zoom: float, duration: int = 0) -> None:
        raise NotImplementedError

    @abstractmethod
    def on(self, event: str, handler: EventHandler, layer_id: str | None = None) -> None:
        raise NotImplementedError
