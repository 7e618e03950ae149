"""Map and filter API schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class FilterRequest(BaseModel):
    states: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    date_from: str = ""
    date_to: str = ""
    postal_code: str = ""
    radius_miles: Optional[float] = Field(default=None, gt=0, le=500)

    @field_validator("date_from", "date_to", "postal_code", mode="before")
    @classmethod
    def _none_to_blank(cls, value):
        return "" if value is None else value


class PointModel(BaseModel):
    lat: float
    lng: float


class RadiusRequest(BaseModel):
    postal_code: str
    radius_miles: Optional[float] = Field(default=None, gt=0, le=500)
    states: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    statuses: List[str] = Field(default_factory=list)
    date_from: str = ""
    date_to: str = ""


class RadiusResponse(BaseModel):
    status: Literal["resolved", "no_results", "invalid"]
    postal_code: str
    radius_miles: float
    center: Optional[PointModel] = None
    zoom: Optional[float] = None
    count: int = 0
    display_name: Optional[str] = None
    circle: Optional[dict] = None


class LayerCountsModel(BaseModel):
    total: int
    filtered: int
    displayed: int
    plotted: int
    dropped: int


class MapFeaturesResponse(BaseModel):
    layers: dict[str, dict]
    counts: LayerCountsModel
    layerCounts: dict[str, int]
    radius: Optional[RadiusResponse] = None


class ClusterPreviewResponse(BaseModel):
    zoom: float
    layers: dict[str, dict]
    clusterCount: int
    pointCount: int
