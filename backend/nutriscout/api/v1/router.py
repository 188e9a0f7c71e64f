"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from nutriscout.api.v1 import health, neighborhood, products, scraping, stores

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(stores.router, prefix="/stores", tags=["stores"])
api_v1_router.include_router(products.router, prefix="/products", tags=["products"])
api_v1_router.include_router(scraping.router, prefix="/scraping", tags=["scraping"])
api_v1_router.include_router(neighborhood.router, prefix="/neighborhood", tags=["neighborhood"])
