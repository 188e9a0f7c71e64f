"""Canonical supermarket brands recognised in OpenStreetMap data."""

from typing import Optional

from nutriscout.scrapers.utils.normalizer import normalize_text

# Substring of the normalized OSM brand/operator/name -> canonical brand key.
# Longer aliases first so "dia express" wins over "dia".
BRAND_MAPPINGS: list[tuple[str, str]] = [
    ("supermercados coto", "COTO"),
    ("coto digital", "COTO"),
    ("coto", "COTO"),
    ("carrefour express", "CARREFOUR"),
    ("carrefour market", "CARREFOUR"),
    ("carrefour maxi", "CARREFOUR"),
    ("carrefour", "CARREFOUR"),
    ("jumbo", "JUMBO"),
    ("disco", "DISCO"),
    ("vea", "VEA"),
    ("dia express", "DIA"),
    ("dia", "DIA"),
]

# Brands with a registered brand adapter
SUPPORTED_BRANDS = frozenset({"COTO", "CARREFOUR", "JUMBO", "VEA", "DISCO"})

BRAND_URLS = {
    "COTO": "https://www.cotodigital3.com.ar",
    "CARREFOUR": "https://www.carrefour.com.ar",
    "JUMBO": "https://www.jumbo.com.ar",
    "VEA": "https://www.vea.com.ar",
    "DISCO": "https://www.disco.com.ar",
    "DIA": "https://diaonline.supermercadosdia.com.ar",
}


def normalize_brand(*candidates: Optional[str]) -> Optional[str]:
    """Map the first recognisable brand/operator/name tag to a brand key.

    Matching works on whole words of the normalized text, so "Día %" and
    "DIA Express" map to DIA but "Diario" does not.
    """
    for candidate in candidates:
        text = normalize_text(candidate)
        if not text:
            continue
        padded = f" {text} "
        for alias, brand in BRAND_MAPPINGS:
            if f" {alias} " in padded:
                return brand
    return None


def is_supported_brand(brand: Optional[str]) -> bool:
    return brand in SUPPORTED_BRANDS
