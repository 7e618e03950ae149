"""Own the per-product map layers and their cluster interactions."""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Literal, Optional, Sequence, Union

from ...config import settings
from ...models.domain import GeoPoint
from ..features.builder import feature_collection
from ..map_engine.base import ClusterConfig, MapEngine, MapEngineError, MapEvent
from .expansion import ClusterExpansion

logger = logging.getLogger(__name__)

OTHER_LAYER = "other"
ViewMode = Literal["admin", "customer"]


class MapState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class MapNotReadyError(RuntimeError):
    """The map surface never became ready within the retry budget."""


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "layer"


def partition_features(features: Sequence[dict], reserved_layers: Sequence[str]) -> dict[str, list[dict]]:
    """Split features by ``product_type`` into the reserved buckets; the rest go to ``other``."""
    bucket_by_type = {name.lower(): name for name in reserved_layers}
    partitioned: dict[str, list[dict]] = {name: [] for name in reserved_layers}
    partitioned[OTHER_LAYER] = []
    for feature in features:
        product_type = str(feature.get("properties", {}).get("product_type") or "")
        partitioned[bucket_by_type.get(product_type.lower(), OTHER_LAYER)].append(feature)
    return partitioned


@dataclass(slots=True, frozen=True)
class LayerSpec:
    bucket: str
    product_type: Optional[str]

    @property
    def source(self) -> str:
        return f"customers-{_slug(self.bucket)}"

    @property
    def cluster_layer(self) -> str:
        return f"clusters-{_slug(self.bucket)}"

    @property
    def point_layer(self) -> str:
        return f"points-{_slug(self.bucket)}"


@dataclass(slots=True)
class ClusterSelection:
    cluster_id: int
    layer_id: str
    leaves: list[dict]
    expansion_zoom: float
    center: GeoPoint


@dataclass(slots=True)
class PointSelection:
    feature: dict


@dataclass(slots=True)
class LocationSelection:
    """Several customers sharing one coordinate, shown as a list."""

    center: GeoPoint
    features: list[dict] = field(default_factory=list)


Selection = Union[ClusterSelection, PointSelection, LocationSelection]
SelectionCallback = Callable[[Selection], Any]


class LayerManager:
    """Keeps one clustered source per reserved product type plus a catch-all layer.

    All engine calls are deferred until :meth:`wait_until_ready` has seen the
    surface attach and the ``load`` event fire. Data pushed before that point
    is held and flushed once the layers exist.
    """

    def __init__(
        self,
        engine: MapEngine,
        *,
        reserved_layers: Sequence[str] | None = None,
        cluster_config: ClusterConfig | None = None,
        max_attempts: int | None = None,
        interval_seconds: float | None = None,
        load_timeout_seconds: float | None = None,
        colocated_epsilon: float | None = None,
        colocated_threshold: int | None = None,
        cluster_timeout_seconds: float | None = None,
    ) -> None:
        self.engine = engine
        reserved = reserved_layers if reserved_layers is not None else settings.reserved_layers
        self.layers = [LayerSpec(bucket=name, product_type=name) for name in reserved]
        self.layers.append(LayerSpec(bucket=OTHER_LAYER, product_type=None))
        self.cluster_config = cluster_config or ClusterConfig(
            cluster=True,
            cluster_radius=settings.cluster_radius_px,
            cluster_max_zoom=settings.cluster_max_zoom,
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.map_ready_max_attempts
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.map_ready_interval_seconds
        )
        self.load_timeout_seconds = (
            load_timeout_seconds
            if load_timeout_seconds is not None
            else self.max_attempts * self.interval_seconds
        )
        self.colocated_epsilon = (
            colocated_epsilon if colocated_epsilon is not None else settings.colocated_epsilon_degrees
        )
        self.colocated_threshold = (
            colocated_threshold if colocated_threshold is not None else settings.colocated_threshold
        )
        self.cluster_timeout_seconds = (
            cluster_timeout_seconds if cluster_timeout_seconds is not None else settings.cluster_timeout_seconds
        )

        self.state = MapState.PENDING
        self.expansion = ClusterExpansion()
        self._pending: Optional[dict[str, list[dict]]] = None
        self._current: dict[str, list[dict]] = {spec.bucket: [] for spec in self.layers}

    @property
    def buckets(self) -> list[str]:
        return [spec.bucket for spec in self.layers]

    @property
    def point_layers(self) -> list[str]:
        return [spec.point_layer for spec in self.layers]

    @property
    def cluster_layers(self) -> list[str]:
        return [spec.cluster_layer for spec in self.layers]

    @property
    def current(self) -> dict[str, list[dict]]:
        return {bucket: list(features) for bucket, features in self._current.items()}

    # readiness -----------------------------------------------------------

    async def wait_until_ready(self) -> None:
        if self.state is MapState.READY:
            return
        if self.state is MapState.FAILED:
            raise MapNotReadyError("Map failed to initialize.")

        for attempt in range(1, self.max_attempts + 1):
            if self.engine.is_attached:
                break
            logger.debug(f"Map container not attached yet (attempt {attempt}/{self.max_attempts})")
            await asyncio.sleep(self.interval_seconds)
        else:
            if not self.engine.is_attached:
                self._fail(f"Map container not attached after {self.max_attempts} attempts")

        if not self.engine.loaded:
            loop = asyncio.get_running_loop()
            loaded: asyncio.Future = loop.create_future()

            def _on_load(event: MapEvent) -> None:
                if not loaded.done():
                    loaded.set_result(True)

            self.engine.on("load", _on_load)
            if not self.engine.loaded:
                try:
                    await asyncio.wait_for(loaded, timeout=self.load_timeout_seconds)
                except asyncio.TimeoutError:
                    self._fail(f"Map did not load within {self.load_timeout_seconds:.2f}s")

        self._install_layers()
        self.state = MapState.READY
        logger.info(f"Map ready with layers: {', '.join(self.buckets)}")

        if self._pending is not None:
            pending, self._pending = self._pending, None
            self.refresh(pending)

    def _fail(self, message: str) -> None:
        self.state = MapState.FAILED
        logger.error(message)
        raise MapNotReadyError(message)

    def _install_layers(self) -> None:
        for spec in self.layers:
            self.engine.create_source(spec.source, self.cluster_config)
            self.engine.add_layer(spec.cluster_layer, spec.source, kind="clusters")
            self.engine.add_layer(spec.point_layer, spec.source, kind="points")

    # data ----------------------------------------------------------------

    def partition(self, features: Sequence[dict]) -> dict[str, list[dict]]:
        return partition_features(features, [spec.bucket for spec in self.layers if spec.product_type])

    def refresh(self, partitioned: dict[str, list[dict]]) -> bool:
        """Replace every layer's data wholesale.

        Returns False when the map is not ready yet; the data is kept and
        applied by :meth:`wait_until_ready`.
        """
        unknown = set(partitioned) - set(self.buckets)
        if unknown:
            logger.warning(f"Ignoring features for unknown layers: {sorted(unknown)}")
        snapshot = {spec.bucket: list(partitioned.get(spec.bucket, [])) for spec in self.layers}

        if self.state is not MapState.READY:
            logger.debug("Map not ready, deferring layer refresh")
            self._pending = snapshot
            return False

        for spec in self.layers:
            self.engine.set_source_data(spec.source, feature_collection(snapshot[spec.bucket]))
        self._current = snapshot
        self.expansion.reset()
        counts = ", ".join(f"{bucket}={len(features)}" for bucket, features in snapshot.items())
        logger.info(f"Refreshed map layers ({counts})")
        return True

    def update(self, features: Sequence[dict]) -> bool:
        return self.refresh(self.partition(features))

    # interactions --------------------------------------------------------

    def _layer_for(self, layer_id: str) -> LayerSpec:
        for spec in self.layers:
            if layer_id in (spec.cluster_layer, spec.point_layer):
                return spec
        raise KeyError(f"Unknown layer '{layer_id}'")

    async def expand_cluster(self, feature: dict, layer_id: str) -> Optional[ClusterSelection]:
        """Resolve a clicked cluster into its leaf features.

        Returns None when the engine cannot resolve the cluster, raises while
        asked, or never answers within ``cluster_timeout_seconds``; the
        expansion state machine falls back to idle in that case.
        """
        properties = feature.get("properties", {})
        cluster_id = properties.get("cluster_id")
        point_count = int(properties.get("point_count") or 0)
        lng, lat = feature["geometry"]["coordinates"]
        center = GeoPoint(lat=float(lat), lng=float(lng))
        self._layer_for(layer_id)

        self.expansion.click(cluster_id)
        loop = asyncio.get_running_loop()

        leaves_future: asyncio.Future = loop.create_future()

        def _on_leaves(err: Optional[Exception], leaves: Optional[list[dict]]) -> None:
            if leaves_future.done():
                return
            if err is not None:
                leaves_future.set_exception(err)
            else:
                leaves_future.set_result(leaves or [])

        try:
            self.engine.get_cluster_leaves(cluster_id, point_count, _on_leaves)
            leaves = await asyncio.wait_for(leaves_future, timeout=self.cluster_timeout_seconds)
        except asyncio.TimeoutError:
            message = f"Cluster {cluster_id} leaves not returned within {self.cluster_timeout_seconds:.2f}s"
            self.expansion.fail(MapEngineError(message))
            return None
        except Exception as exc:
            self.expansion.fail(exc)
            return None
        self.expansion.resolve(leaves)

        zoom_future: asyncio.Future = loop.create_future()

        def _on_zoom(err: Optional[Exception], zoom: Optional[float]) -> None:
            if zoom_future.done():
                return
            if err is not None or zoom is None:
                logger.warning(f"Could not resolve expansion zoom for cluster {cluster_id}: {err}")
                zoom_future.set_result(self.engine.zoom + 2)
            else:
                zoom_future.set_result(float(zoom))

        try:
            self.engine.get_cluster_expansion_zoom(cluster_id, _on_zoom)
            expansion_zoom = await asyncio.wait_for(zoom_future, timeout=self.cluster_timeout_seconds)
        except Exception as exc:
            logger.warning(f"Could not resolve expansion zoom for cluster {cluster_id}: {exc!r}")
            expansion_zoom = self.engine.zoom + 2

        displayed = self.expansion.display()
        logger.debug(f"Cluster {cluster_id} expanded to {len(displayed)} leaves")
        return ClusterSelection(
            cluster_id=cluster_id,
            layer_id=layer_id,
            leaves=displayed,
            expansion_zoom=expansion_zoom,
            center=center,
        )

    def select_point(self, point: GeoPoint, feature: dict) -> PointSelection | LocationSelection:
        """Pick between a single detail view and a list of colocated customers."""
        lng, lat = feature["geometry"]["coordinates"]
        colocated: list[dict] = []
        for layer_id in self.point_layers:
            for candidate in self.engine.query_rendered_features(point, [layer_id]):
                c_lng, c_lat = candidate["geometry"]["coordinates"]
                if abs(c_lng - lng) < self.colocated_epsilon and abs(c_lat - lat) < self.colocated_epsilon:
                    colocated.append(candidate)

        if len(colocated) > self.colocated_threshold:
            return LocationSelection(center=GeoPoint(lat=float(lat), lng=float(lng)), features=colocated)
        return PointSelection(feature=feature)

    def make_click_handler(
        self,
        layer_id: str,
        *,
        view_mode: ViewMode,
        on_select: SelectionCallback | None = None,
    ) -> Callable[[MapEvent], Any]:
        """Build the click handler for one layer.

        In ``customer`` view mode the handler ignores clicks entirely.
        """
        spec = self._layer_for(layer_id)

        if view_mode == "customer":

            def _disabled(event: MapEvent) -> None:
                logger.debug(f"Customer view mode: interaction on {layer_id} disabled")
                return None

            return _disabled

        def _emit(selection: Optional[Selection]) -> Optional[Selection]:
            if selection is not None and on_select is not None:
                on_select(selection)
            return selection

        if layer_id == spec.cluster_layer:

            async def _on_cluster_click(event: MapEvent) -> Optional[ClusterSelection]:
                if not event.features:
                    return None
                return _emit(await self.expand_cluster(event.features[0], layer_id))

            return _on_cluster_click

        def _on_point_click(event: MapEvent) -> Optional[Selection]:
            if not event.features or event.point is None:
                return None
            return _emit(self.select_point(event.point, event.features[0]))

        return _on_point_click

    def attach_handlers(self, *, view_mode: ViewMode, on_select: SelectionCallback | None = None) -> None:
        for spec in self.layers:
            for layer_id in (spec.cluster_layer, spec.point_layer):
                self.engine.on(
                    "click",
                    self.make_click_handler(layer_id, view_mode=view_mode, on_select=on_select),
                    layer_id=layer_id,
                )

    def fly_to(self, center: GeoPoint, zoom: float, duration: int | None = None) -> None:
        if self.state is not MapState.READY:
            logger.debug("Map not ready, skipping camera move")
            return
        self.engine.fly_to(
            center=center,
            zoom=zoom,
            duration=duration if duration is not None else settings.fly_to_duration_ms,
        )


async def resolve_click(results: Sequence[Any]) -> list[Any]:
    """Await any coroutine results returned by engine click dispatch."""
    resolved = []
    for result in results:
        resolved.append(await result if inspect.isawaitable(result) else result)
    return resolved
