"""Nearby store endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.core.exceptions import NotFoundError
from nutriscout.dependencies import get_db, get_discovery_service
from nutriscout.models.store import Store
from nutriscout.schemas import ApiResponse, NearbyStoreResponse, StoreProductResponse
from nutriscout.services.discovery import GeoDiscoveryService
from nutriscout.services.product_service import ProductService

router = APIRouter()


@router.get("/nearby", response_model=ApiResponse)
async def nearby_stores(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius: int = Query(2000, ge=100, le=10000, description="Search radius in meters"),
    discovery: GeoDiscoveryService = Depends(get_discovery_service),
):
    """Food stores around a point, closest first."""
    stores = await discovery.find_nearby_stores(lat, lon, radius)
    return ApiResponse(
        status="success",
        data=[NearbyStoreResponse.model_validate(s) for s in stores],
    )


@router.get("/{store_id}/products", response_model=ApiResponse)
async def store_products(
    store_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Most recent product observations scraped at a store."""
    store = await db.get(Store, store_id)
    if store is None:
        raise NotFoundError("Store", str(store_id))

    products = await ProductService(db).get_recent_products(store_id, limit=limit)
    return ApiResponse(
        status="success",
        data=[StoreProductResponse.model_validate(p) for p in products],
    )
