"""Nearby store discovery through the OpenStreetMap Overpass API.

Finds food shops around a coordinate, maps their OSM brand tags to the
canonical supermarket brands, upserts them into ``nearby_stores`` and
returns them ordered by distance.
"""

import math
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutriscout.config import settings
from nutriscout.models.store import Store
from nutriscout.scrapers.brands import BRAND_URLS, is_supported_brand, normalize_brand

logger = structlog.get_logger(__name__)

EARTH_RADIUS_METERS = 6371e3
METERS_PER_DEGREE_LAT = 111_320
DEFAULT_STORE_NAME = "Supermercado sin nombre"

# OSM tag value -> store_type
SHOP_TYPES = {
    "supermarket": "supermarket",
    "convenience": "convenience",
    "health_food": "health_food",
    "greengrocer": "produce",
    "butcher": "butcher",
    "seafood": "fishmonger",
    "bakery": "bakery",
    "deli": "deli",
}
AMENITY_TYPES = {
    "restaurant": "restaurant",
    "cafe": "cafe",
}


@dataclass
class NearbyStore:
    """A discovered store with its distance from the query point."""

    osm_id: str
    name: str
    store_type: str
    latitude: float
    longitude: float
    distance: int
    brand: Optional[str] = None
    address: Optional[str] = None
    website_url: Optional[str] = None
    scraping_enabled: bool = False
    id: Optional[uuid.UUID] = None

    @classmethod
    def from_model(cls, store: Store, distance: int) -> "NearbyStore":
        return cls(
            id=store.id,
            osm_id=store.osm_id,
            name=store.name,
            brand=store.brand,
            store_type=store.store_type,
            latitude=store.latitude,
            longitude=store.longitude,
            address=store.address,
            website_url=store.website_url,
            scraping_enabled=store.scraping_enabled,
            distance=distance,
        )


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Great-circle distance between two points, rounded to whole meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_METERS * c)


def build_overpass_query(lat: float, lon: float, radius_meters: int, timeout: int = 25) -> str:
    """Overpass QL for food shops and eateries within a radius."""
    shop_regex = "|".join(SHOP_TYPES)
    amenity_regex = "|".join(AMENITY_TYPES)
    around = f"(around:{int(radius_meters)},{lat},{lon})"

    parts = []
    for element in ("node", "way", "relation"):
        parts.append(f'  {element}["shop"~"^({shop_regex})$"]{around};')
        parts.append(f'  {element}["amenity"~"^({amenity_regex})$"]{around};')

    body = "\n".join(parts)
    return f"[out:json][timeout:{timeout}];\n(\n{body}\n);\nout center;"


def _store_type(tags: Dict[str, str]) -> Optional[str]:
    if tags.get("shop") in SHOP_TYPES:
        return SHOP_TYPES[tags["shop"]]
    if tags.get("amenity") in AMENITY_TYPES:
        return AMENITY_TYPES[tags["amenity"]]
    return None


def _address(tags: Dict[str, str]) -> Optional[str]:
    street = tags.get("addr:street")
    if not street:
        return tags.get("addr:full")
    number = tags.get("addr:housenumber")
    return f"{street} {number}" if number else street


def parse_overpass_elements(
    elements: List[Dict[str, Any]], lat: float, lon: float
) -> List[NearbyStore]:
    """Convert Overpass elements into NearbyStore objects.

    Elements without coordinates or a known shop type are skipped. Duplicate
    OSM ids keep the last occurrence.
    """
    stores: Dict[str, NearbyStore] = {}

    for element in elements:
        if not isinstance(element, dict):
            continue
        tags = element.get("tags") or {}

        if element.get("type") == "node":
            el_lat, el_lon = element.get("lat"), element.get("lon")
        else:
            center = element.get("center") or {}
            el_lat, el_lon = center.get("lat"), center.get("lon")
        if el_lat is None or el_lon is None:
            continue

        store_type = _store_type(tags)
        if store_type is None:
            continue

        brand = normalize_brand(tags.get("brand"), tags.get("operator"), tags.get("name"))
        osm_id = f"{element.get('type', 'node')}/{element.get('id')}"

        stores[osm_id] = NearbyStore(
            osm_id=osm_id,
            name=tags.get("name") or tags.get("brand") or DEFAULT_STORE_NAME,
            brand=brand,
            store_type=store_type,
            latitude=float(el_lat),
            longitude=float(el_lon),
            distance=haversine_meters(lat, lon, float(el_lat), float(el_lon)),
            address=_address(tags),
            website_url=BRAND_URLS.get(brand) or tags.get("website") or tags.get("contact:website"),
            scraping_enabled=is_supported_brand(brand),
        )

    return list(stores.values())


class GeoDiscoveryService:
    """Discovers and persists stores around a coordinate.

    Network or database failures never propagate: discovery degrades to an
    empty (or unpersisted) result and logs the cause.
    """

    def __init__(
        self,
        db: AsyncSession,
        http_client: Optional[httpx.AsyncClient] = None,
        overpass_urls: Optional[List[str]] = None,
    ):
        self.db = db
        self.http_client = http_client
        self.overpass_urls = overpass_urls or settings.get_overpass_urls()
        self.logger = logger.bind(service="geo_discovery")

    async def _post_overpass(self, client: httpx.AsyncClient, query: str) -> Optional[Dict[str, Any]]:
        """Try each Overpass mirror in order; None when all fail."""
        for url in self.overpass_urls:
            try:
                response = await client.post(
                    url,
                    data={"data": query},
                    timeout=settings.OVERPASS_TIMEOUT_SECONDS + 5,
                )
            except httpx.HTTPError as e:
                self.logger.warning("overpass_request_failed", url=url, error=str(e))
                continue

            if response.status_code != 200:
                self.logger.warning("overpass_bad_status", url=url, status_code=response.status_code)
                continue

            try:
                return response.json()
            except ValueError as e:
                self.logger.warning("overpass_invalid_json", url=url, error=str(e))

        self.logger.error("overpass_all_mirrors_failed", mirrors=len(self.overpass_urls))
        return None

    async def query_overpass(self, lat: float, lon: float, radius_meters: int) -> Optional[List[NearbyStore]]:
        """Fetch and parse nearby shops from Overpass without touching the DB.

        Returns None when every mirror failed.
        """
        query = build_overpass_query(lat, lon, radius_meters, int(settings.OVERPASS_TIMEOUT_SECONDS))

        if self.http_client is not None:
            data = await self._post_overpass(self.http_client, query)
        else:
            async with httpx.AsyncClient(headers={"User-Agent": settings.SCRAPER_USER_AGENT}) as client:
                data = await self._post_overpass(client, query)

        if data is None:
            return None
        return parse_overpass_elements(data.get("elements") or [], lat, lon)

    async def upsert_stores(self, stores: List[NearbyStore]) -> None:
        """Insert new stores and refresh existing ones, keyed by osm_id.

        ``scraping_enabled`` is only set on insert; operator changes to an
        existing row are preserved. DB ids and flags are written back onto
        the NearbyStore objects.
        """
        if not stores:
            return

        by_osm_id = {store.osm_id: store for store in stores}
        result = await self.db.execute(select(Store).where(Store.osm_id.in_(list(by_osm_id))))
        existing = {row.osm_id: row for row in result.scalars().all()}

        created = 0
        for osm_id, store in by_osm_id.items():
            row = existing.get(osm_id)
            if row is None:
                row = Store(
                    osm_id=osm_id,
                    name=store.name,
                    brand=store.brand,
                    store_type=store.store_type,
                    latitude=store.latitude,
                    longitude=store.longitude,
                    address=store.address,
                    website_url=store.website_url,
                    scraping_enabled=store.scraping_enabled,
                )
                self.db.add(row)
                existing[osm_id] = row
                created += 1
            else:
                row.name = store.name
                row.brand = store.brand
                row.store_type = store.store_type
                row.latitude = store.latitude
                row.longitude = store.longitude
                row.address = store.address or row.address
                row.website_url = store.website_url or row.website_url

        await self.db.flush()

        for osm_id, store in by_osm_id.items():
            row = existing[osm_id]
            store.id = row.id
            store.scraping_enabled = row.scraping_enabled
            store.website_url = row.website_url

        await self.db.commit()
        self.logger.info("stores_upserted", total=len(by_osm_id), created=created)

    async def load_known_stores(
        self, lat: float, lon: float, radius_meters: int, exclude_osm_ids: set[str]
    ) -> List[NearbyStore]:
        """Previously discovered, scraping-enabled stores inside the radius."""
        lat_delta = radius_meters / METERS_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(lat)), 0.01)
        lon_delta = radius_meters / (METERS_PER_DEGREE_LAT * cos_lat)

        result = await self.db.execute(
            select(Store).where(and_(
                Store.scraping_enabled == True,  # noqa: E712
                Store.latitude.between(lat - lat_delta, lat + lat_delta),
                Store.longitude.between(lon - lon_delta, lon + lon_delta),
            ))
        )

        known = []
        for row in result.scalars().all():
            if row.osm_id in exclude_osm_ids:
                continue
            distance = haversine_meters(lat, lon, row.latitude, row.longitude)
            if distance <= radius_meters:
                known.append(NearbyStore.from_model(row, distance))
        return known

    async def find_nearby_stores(
        self, lat: float, lon: float, radius_meters: Optional[int] = None
    ) -> List[NearbyStore]:
        """Discover stores around (lat, lon), closest first.

        Args:
            lat: Latitude of the query point
            lon: Longitude of the query point
            radius_meters: Search radius, defaults to DISCOVERY_RADIUS_METERS

        Returns:
            Stores sorted by ascending distance; empty when Overpass is down
        """
        radius = radius_meters or settings.DISCOVERY_RADIUS_METERS
        stores = await self.query_overpass(lat, lon, radius)
        if stores is None:
            return []

        try:
            await self.upsert_stores(stores)
            known = await self.load_known_stores(lat, lon, radius, {s.osm_id for s in stores})
            stores.extend(known)
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error("store_persistence_failed", error=str(e), stores=len(stores))

        stores.sort(key=lambda s: s.distance)
        self.logger.info(
            "stores_discovered",
            lat=lat,
            lon=lon,
            radius=radius,
            count=len(stores),
            brands=sorted({s.brand for s in stores if s.brand}),
        )
        return stores
