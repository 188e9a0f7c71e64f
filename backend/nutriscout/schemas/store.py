"""Store Pydantic schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NearbyStoreResponse(BaseModel):
    """A discovered store with its distance from the query point."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    osm_id: str
    name: str
    brand: Optional[str] = None
    store_type: str
    latitude: float
    longitude: float
    distance: int
    address: Optional[str] = None
    website_url: Optional[str] = None
    scraping_enabled: bool = False


class StoreProductResponse(BaseModel):
    """A persisted product observation of one store."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    search_query: Optional[str] = None
    product_name: str
    brand: Optional[str] = None
    price_current: Decimal
    price_regular: Optional[Decimal] = None
    unit: Optional[str] = None
    quantity: Optional[Decimal] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    nutritional_claims: List[str] = []
    nutrition_info: Dict[str, Any] = {}
    scraped_at: datetime
