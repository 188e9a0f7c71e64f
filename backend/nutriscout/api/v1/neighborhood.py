"""Healthy neighborhood spots endpoint."""

from fastapi import APIRouter, Depends

from nutriscout.dependencies import get_discovery_service, get_spot_ranker
from nutriscout.schemas import ApiResponse, HealthySpotResponse, SpotSearchRequest, SpotSearchResponse
from nutriscout.services.discovery import GeoDiscoveryService
from nutriscout.services.spot_ranker import SpotRanker

router = APIRouter()


@router.post("/spots", response_model=ApiResponse)
async def healthy_spots(
    body: SpotSearchRequest,
    discovery: GeoDiscoveryService = Depends(get_discovery_service),
    ranker: SpotRanker = Depends(get_spot_ranker),
):
    """Nearby places most likely to offer nutritious options."""
    stores = await discovery.find_nearby_stores(body.lat, body.lon, body.radius)
    spots = await ranker.rank(stores, body.limit) if stores else []
    return ApiResponse(
        status="success",
        data=SpotSearchResponse(
            spots=[HealthySpotResponse.model_validate(spot, from_attributes=True) for spot in spots],
            total_candidates=len(stores),
        ),
    )
