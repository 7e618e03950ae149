"""Customer-facing API schemas."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel


class StateCountModel(BaseModel):
    state: str
    customers: int


class MissingCoordinatesModel(BaseModel):
    id: str
    name: str
    city: str | None = None
    state: str
    postal_code: str
    latitude: float | None = None
    longitude: float | None = None


class CustomerStatsResponse(BaseModel):
    totalCustomers: int
    plottedCustomers: int
    missingCoordinates: int
    invalidCoordinates: int
    unplottedPercentage: float
    statusCounts: dict[str, int]
    productTypeCounts: dict[str, int]
    topStates: List[StateCountModel]
    missingSample: List[MissingCoordinatesModel] = []


class FilterOptionsResponse(BaseModel):
    states: List[str]
    products: List[str]


class UploadResponse(BaseModel):
    fileName: str
    storedAs: str
    rows: int
    stats: CustomerStatsResponse
