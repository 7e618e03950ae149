"""In-process map engine with DBSCAN point clustering."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
from sklearn.cluster import DBSCAN

from ...config import settings
from ...models.domain import GeoPoint
from ..geospatial import EARTH_RADIUS_M, haversine_meters, meters_per_pixel
from .base import (
    ClusterConfig,
    ClusterLeavesCallback,
    EventHandler,
    ExpansionZoomCallback,
    LayerKind,
    MapEngine,
    MapEngineError,
    MapEvent,
)

logger = logging.getLogger(__name__)

MAX_ZOOM = 22


@dataclass(slots=True)
class _Source:
    config: ClusterConfig
    features: list[dict] = field(default_factory=list)
    coordinates: np.ndarray = field(default_factory=lambda: np.empty((0, 2)))


@dataclass(slots=True)
class _Rendering:
    """Rendered output of one source at one integer zoom."""

    features: list[dict]
    point_to_cluster: dict[int, int]


@dataclass(slots=True)
class _ClusterRecord:
    source: str
    zoom: int
    members: tuple[int, ...]


def abbreviate_count(count: int) -> str:
    if count >= 10000:
        return f"{round(count / 1000)}k"
    if count >= 1000:
        return f"{count / 1000:.1f}k"
    return str(count)


class LocalMapEngine(MapEngine):
    """Map engine that renders and clusters features without a display.

    Points passed to :meth:`query_rendered_features` and :meth:`click` are
    geographic (``GeoPoint``); hit tolerance is expressed in pixels and
    converted to meters for the current zoom.
    """

    def __init__(
        self,
        *,
        center: GeoPoint | None = None,
        zoom: float | None = None,
        attached: bool = True,
        tile_size: int = 512,
        point_hit_px: float = 8.0,
        cluster_hit_px: float = 20.0,
    ) -> None:
        default_lng, default_lat = settings.default_center
        self.center = center or GeoPoint(lat=default_lat, lng=default_lng)
        self._zoom = float(zoom if zoom is not None else settings.default_zoom)
        self._attached = attached
        self._loaded = False
        self.tile_size = tile_size
        self.point_hit_px = point_hit_px
        self.cluster_hit_px = cluster_hit_px
        self.camera_moves: list[dict] = []

        self._sources: dict[str, _Source] = {}
        self._layers: dict[str, tuple[str, LayerKind]] = {}
        self._handlers: dict[tuple[str, str | None], list[EventHandler]] = defaultdict(list)
        self._renderings: dict[tuple[str, int], _Rendering] = {}
        self._clusters: dict[int, _ClusterRecord] = {}
        self._next_cluster_id = 1

    # lifecycle -----------------------------------------------------------

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def zoom(self) -> float:
        return self._zoom

    def attach(self) -> None:
        self._attached = True

    def load(self) -> None:
        """Finish initialization and fire ``load``."""
        if not self._attached:
            raise MapEngineError("Cannot load a map without an attached surface.")
        self._loaded = True
        logger.info("Local map engine loaded")
        self.emit(MapEvent(type="load"))

    # sources and layers --------------------------------------------------

    def create_source(self, name: str, cluster_config: ClusterConfig) -> None:
        if name in self._sources:
            raise MapEngineError(f"Source '{name}' already exists.")
        self._sources[name] = _Source(config=cluster_config)

    def add_layer(self, layer_id: str, source: str, *, kind: LayerKind) -> None:
        if source not in self._sources:
            raise MapEngineError(f"Layer '{layer_id}' references unknown source '{source}'.")
        self._layers[layer_id] = (source, kind)

    def set_source_data(self, name: str, collection: dict) -> None:
        source = self._sources.get(name)
        if source is None:
            raise MapEngineError(f"Unknown source '{name}'.")
        features = list(collection.get("features") or [])
        source.features = features
        if features:
            source.coordinates = np.array(
                [feature["geometry"]["coordinates"] for feature in features], dtype=float
            )
        else:
            source.coordinates = np.empty((0, 2))
        self._invalidate(name)

    def source_features(self, name: str) -> list[dict]:
        source = self._sources.get(name)
        if source is None:
            raise MapEngineError(f"Unknown source '{name}'.")
        return list(source.features)

    def _invalidate(self, name: str) -> None:
        for key in [key for key in self._renderings if key[0] == name]:
            del self._renderings[key]
        for cluster_id in [cid for cid, record in self._clusters.items() if record.source == name]:
            del self._clusters[cluster_id]

    # clustering ----------------------------------------------------------

    def _render(self, name: str, zoom: int) -> _Rendering:
        key = (name, zoom)
        cached = self._renderings.get(key)
        if cached is not None:
            return cached

        source = self._sources[name]
        config = source.config
        if not config.cluster or zoom > config.cluster_max_zoom or len(source.features) < 2:
            rendering = _Rendering(features=list(source.features), point_to_cluster={})
            self._renderings[key] = rendering
            return rendering

        coordinates = source.coordinates
        reference_lat = float(np.mean(coordinates[:, 1]))
        eps_meters = config.cluster_radius * meters_per_pixel(reference_lat, zoom, self.tile_size)
        # haversine metric expects [lat, lng] in radians
        labels = DBSCAN(
            eps=eps_meters / EARTH_RADIUS_M,
            min_samples=2,
            metric="haversine",
            algorithm="ball_tree",
        ).fit(np.radians(coordinates[:, [1, 0]])).labels_

        rendered: list[dict] = []
        point_to_cluster: dict[int, int] = {}
        for index in np.flatnonzero(labels == -1):
            rendered.append(source.features[int(index)])

        for label in sorted(set(labels.tolist()) - {-1}):
            members = tuple(int(i) for i in np.flatnonzero(labels == label))
            cluster_id = self._next_cluster_id
            self._next_cluster_id += 1
            self._clusters[cluster_id] = _ClusterRecord(source=name, zoom=zoom, members=members)
            for member in members:
                point_to_cluster[member] = cluster_id
            lng, lat = coordinates[list(members)].mean(axis=0)
            rendered.append(
                {
                    "type": "Feature",
                    "properties": {
                        "cluster": True,
                        "cluster_id": cluster_id,
                        "point_count": len(members),
                        "point_count_abbreviated": abbreviate_count(len(members)),
                    },
                    "geometry": {"type": "Point", "coordinates": [float(lng), float(lat)]},
                }
            )

        rendering = _Rendering(features=rendered, point_to_cluster=point_to_cluster)
        self._renderings[key] = rendering
        return rendering

    def rendered_features(self, name: str, zoom: float | None = None) -> list[dict]:
        """Everything a source draws at ``zoom`` (defaults to the camera zoom)."""
        if name not in self._sources:
            raise MapEngineError(f"Unknown source '{name}'.")
        level = int(math.floor(self._zoom if zoom is None else zoom))
        return list(self._render(name, level).features)

    # queries -------------------------------------------------------------

    def query_rendered_features(self, point: GeoPoint, layers: Sequence[str] | None = None) -> list[dict]:
        layer_ids = list(layers) if layers is not None else list(self._layers)
        level = int(math.floor(self._zoom))
        resolution = meters_per_pixel(point.lat, self._zoom, self.tile_size)

        hits: list[dict] = []
        for layer_id in layer_ids:
            if layer_id not in self._layers:
                continue
            source_name, kind = self._layers[layer_id]
            tolerance = (self.cluster_hit_px if kind == "clusters" else self.point_hit_px) * resolution
            for feature in self._render(source_name, level).features:
                is_cluster = bool(feature["properties"].get("cluster"))
                if is_cluster != (kind == "clusters"):
                    continue
                lng, lat = feature["geometry"]["coordinates"]
                if haversine_meters(point.lat, point.lng, lat, lng) <= tolerance:
                    hits.append({**feature, "layer": layer_id, "source": source_name})
        return hits

    def get_cluster_leaves(
        self,
        cluster_id: int,
        point_count: int,
        callback: ClusterLeavesCallback,
        offset: int = 0,
    ) -> None:
        record = self._clusters.get(cluster_id)
        if record is None:
            callback(MapEngineError(f"No cluster with id {cluster_id}."), None)
            return
        source = self._sources[record.source]
        members = record.members[offset : offset + point_count]
        callback(None, [source.features[index] for index in members])

    def get_cluster_expansion_zoom(self, cluster_id: int, callback: ExpansionZoomCallback) -> None:
        record = self._clusters.get(cluster_id)
        if record is None:
            callback(MapEngineError(f"No cluster with id {cluster_id}."), None)
            return
        max_zoom = self._sources[record.source].config.cluster_max_zoom
        for level in range(record.zoom + 1, max_zoom + 1):
            mapping = self._render(record.source, level).point_to_cluster
            owners = {mapping.get(member) for member in record.members}
            if len(owners) > 1 or None in owners:
                callback(None, float(level))
                return
        callback(None, float(min(max_zoom + 1, MAX_ZOOM)))

    # camera and events ---------------------------------------------------

    def fly_to(self, *, center: GeoPoint, zoom: float, duration: int = 0) -> None:
        self.center = center
        self._zoom = max(0.0, min(float(MAX_ZOOM), float(zoom)))
        move = {"center": center, "zoom": self._zoom, "duration": duration}
        self.camera_moves.append(move)
        self.emit(MapEvent(type="move", data=move))

    def on(self, event: str, handler: EventHandler, layer_id: str | None = None) -> None:
        self._handlers[(event, layer_id)].append(handler)

    def emit(self, event: MapEvent) -> list[Any]:
        results: list[Any] = []
        for handler in list(self._handlers.get((event.type, event.layer_id), ())):
            try:
                results.append(handler(event))
            except Exception as exc:
                logger.exception(f"Map '{event.type}' handler failed: {exc}")
                if event.type != "error":
                    self.emit(MapEvent(type="error", data={"error": exc, "event": event.type}))
        return results

    def click(self, point: GeoPoint) -> list[Any]:
        """Dispatch a click at ``point`` to layer handlers whose layer has a hit.

        Coroutine results from async handlers are returned for the caller to
        await.
        """
        results: list[Any] = []
        for (event_type, layer_id) in list(self._handlers):
            if event_type != "click" or layer_id is None:
                continue
            features = self.query_rendered_features(point, [layer_id])
            if features:
                results.extend(self.emit(MapEvent(type="click", point=point, layer_id=layer_id, features=features)))
        results.extend(self.emit(MapEvent(type="click", point=point)))
        return [result for result in results if result is not None]
