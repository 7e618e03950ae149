"""Map feature, cluster and radius endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ...config import settings
from ...schemas.map import (
    ClusterPreviewResponse,
    FilterRequest,
    LayerCountsModel,
    MapFeaturesResponse,
    RadiusRequest,
    RadiusResponse,
)
from ...services.features.builder import feature_collection, to_features
from ...services.geocoding.client import GeocoderClient, get_geocoder_client
from ...services.layers.manager import LayerManager, partition_features
from ...services.map_engine.local import LocalMapEngine
from ..dependencies import (
    Dataset,
    filtered_customers,
    get_dataset,
    radius_response,
    resolve_radius,
    to_filter_state,
)

router = APIRouter(prefix="/map", tags=["map"])


@router.post("/features", response_model=MapFeaturesResponse, status_code=status.HTTP_200_OK)
async def get_map_features(
    request: FilterRequest,
    dataset: Dataset = Depends(get_dataset),
    geocoder: GeocoderClient = Depends(get_geocoder_client),
) -> MapFeaturesResponse:
    """Filtered customers as one FeatureCollection per map layer."""
    filters = to_filter_state(request)
    radius = await resolve_radius(filters, dataset.customers, geocoder)
    customers = filtered_customers(dataset.customers, filters, radius)
    result = to_features(customers, dataset.classifier)
    partitioned = partition_features(result.features, settings.reserved_layers)

    return MapFeaturesResponse(
        layers={bucket: feature_collection(features) for bucket, features in partitioned.items()},
        counts=LayerCountsModel(
            total=len(dataset.customers),
            filtered=len(customers),
            displayed=len(result.features),
            plotted=len(result.features),
            dropped=result.skipped_invalid + result.dropped_malformed,
        ),
        layerCounts={bucket: len(features) for bucket, features in partitioned.items()},
        radius=radius_response(radius) if radius is not None else None,
    )


@router.post("/clusters", response_model=ClusterPreviewResponse, status_code=status.HTTP_200_OK)
async def preview_clusters(
    request: FilterRequest,
    zoom: float = Query(default=settings.default_zoom, ge=0, le=22),
    dataset: Dataset = Depends(get_dataset),
    geocoder: GeocoderClient = Depends(get_geocoder_client),
) -> ClusterPreviewResponse:
    """Cluster the filtered customers server-side at ``zoom``."""
    filters = to_filter_state(request)
    radius = await resolve_radius(filters, dataset.customers, geocoder)
    customers = filtered_customers(dataset.customers, filters, radius)
    result = to_features(customers, dataset.classifier)

    engine = LocalMapEngine(zoom=zoom)
    engine.load()
    manager = LayerManager(engine)
    await manager.wait_until_ready()
    manager.update(result.features)

    layers: dict[str, dict] = {}
    cluster_count = 0
    point_count = 0
    for spec in manager.layers:
        rendered = engine.rendered_features(spec.source)
        clusters = sum(1 for feature in rendered if feature["properties"].get("cluster"))
        cluster_count += clusters
        point_count += len(rendered) - clusters
        layers[spec.bucket] = feature_collection(rendered)

    return ClusterPreviewResponse(zoom=zoom, layers=layers, clusterCount=cluster_count, pointCount=point_count)


@router.post("/radius", response_model=RadiusResponse, status_code=status.HTTP_200_OK)
async def resolve_radius_center(
    request: RadiusRequest,
    dataset: Dataset = Depends(get_dataset),
    geocoder: GeocoderClient = Depends(get_geocoder_client),
) -> RadiusResponse:
    """Geocode a postal code and count customers within the radius."""
    filters = to_filter_state(
        FilterRequest(
            states=request.states,
            products=request.products,
            statuses=request.statuses,
            date_from=request.date_from,
            date_to=request.date_to,
            postal_code=request.postal_code,
            radius_miles=request.radius_miles,
        )
    )
    radius = await resolve_radius(filters, dataset.customers, geocoder)
    if radius is None:
        return RadiusResponse(status="invalid", postal_code=request.postal_code, radius_miles=filters.radius_miles)
    return radius_response(radius)
