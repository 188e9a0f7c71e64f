"""Product search request/response schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ProductSearchRequest(BaseModel):
    """Body of POST /products/search."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    query: str = Field(..., min_length=2, max_length=100)
    force_refresh: bool = False
    max_stores: int = Field(5, ge=0, le=10, description="0 means cache only")
    intolerances: List[str] = Field(default_factory=list, max_length=10)

    @field_validator("query")
    @classmethod
    def strip_query(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("query must have at least 2 characters")
        return value


class SearchProductResponse(BaseModel):
    """A product found at a nearby store."""

    product_name: str
    brand: Optional[str] = None
    price_current: float
    price_regular: Optional[float] = None
    unit: Optional[str] = None
    quantity: Optional[float] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    nutritional_claims: List[str] = []
    nutrition_info: Dict[str, Any] = {}
    store_id: Optional[str] = None
    store_name: Optional[str] = None
    store_brand: Optional[str] = None
    distance_meters: Optional[int] = None
    store_latitude: Optional[float] = None
    store_longitude: Optional[float] = None


class ProductSearchResponse(BaseModel):
    products: List[SearchProductResponse]
    stores_searched: int
    cache_hit: bool
    search_latency_ms: int
    filtered_out_count: int = 0
