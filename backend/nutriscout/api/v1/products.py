"""Hyperlocal product search endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from nutriscout.dependencies import enforce_search_rate_limit, get_search_orchestrator
from nutriscout.schemas import ApiResponse, ProductSearchRequest, ProductSearchResponse
from nutriscout.services.orchestrator import ProductSearchOrchestrator

router = APIRouter()


@router.post("/search", response_model=ApiResponse, dependencies=[Depends(enforce_search_rate_limit)])
async def search_products(
    body: ProductSearchRequest,
    orchestrator: ProductSearchOrchestrator = Depends(get_search_orchestrator),
):
    """Search a food across nearby stores, scraping them when needed."""
    result = await orchestrator.search_nearby_products(
        lat=body.lat,
        lon=body.lon,
        query=body.query,
        force_refresh=body.force_refresh,
        max_stores=body.max_stores,
        intolerances=body.intolerances,
    )
    return ApiResponse(status="success", data=ProductSearchResponse.model_validate(result.to_dict()))


@router.get("/search", response_model=ApiResponse, dependencies=[Depends(enforce_search_rate_limit)])
async def cached_search(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    query: str = Query(..., min_length=2, max_length=100),
    intolerances: Optional[List[str]] = Query(None),
    orchestrator: ProductSearchOrchestrator = Depends(get_search_orchestrator),
):
    """Cache-only lookup: never triggers discovery or scraping."""
    result = await orchestrator.search_nearby_products(
        lat=lat,
        lon=lon,
        query=query,
        max_stores=0,
        intolerances=intolerances,
    )
    return ApiResponse(status="success", data=ProductSearchResponse.model_validate(result.to_dict()))
