"""Healthy neighborhood spot schemas."""

from typing import List, Optional

from pydantic import BaseModel, Field


class SpotSearchRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius: int = Field(1800, ge=200, le=5000)
    limit: int = Field(4, ge=1, le=8)


class HealthySpotResponse(BaseModel):
    id: str
    name: str
    brand: Optional[str] = None
    type: str
    score: int
    reason: str
    tags: List[str] = []
    distance_m: Optional[int] = None
    latitude: float
    longitude: float


class SpotSearchResponse(BaseModel):
    spots: List[HealthySpotResponse]
    total_candidates: int
