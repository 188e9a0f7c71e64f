"""Ranks nearby food spots by how likely they are to offer healthy options."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import groq
import structlog

from nutriscout.config import settings
from nutriscout.services.discovery import NearbyStore
from nutriscout.services.llm_client import get_groq_client, parse_json_object

logger = structlog.get_logger(__name__)

DEFAULT_RADIUS_METERS = 1800
MIN_RADIUS_METERS = 200
MAX_RADIUS_METERS = 5000
DEFAULT_LIMIT = 4
MAX_LIMIT = 8
MAX_CANDIDATES = 40
MIN_LLM_SCORE = 55

TYPE_BASE_SCORES = {
    "health_food": 92,
    "produce": 82,
    "fishmonger": 60,
    "cafe": 65,
    "deli": 64,
    "supermarket": 58,
    "restaurant": 55,
    "butcher": 45,
    "convenience": 40,
}

KEYWORD_BOOSTS = [
    (re.compile(r"verde|green|natural|organic|organico", re.I), 18, "Orgánico"),
    (re.compile(r"veg|plant|huerta|garden", re.I), 15, "Plant-based"),
    (re.compile(r"integral|whole|grain", re.I), 10, "Integral"),
]

BAKERY_HEALTH_HINTS = re.compile(
    r"masa madre|sourdough|integral|whole grain|grano entero|multicereal|"
    r"sin azucar|sin azúcar|sugar free|vegan[oa]?|plant based|"
    r"sin gluten|gluten free|sin tacc|harina de almendra|harina de coco|harinas alternativas",
    re.I,
)

SYSTEM_PROMPT = (
    "Eres un scout de alimentación saludable. Recibes un JSON con locales cercanos. "
    "Priorizá los que probablemente ofrezcan opciones nutritivas según su nombre, tipo y marca. "
    "Descartá panaderías tradicionales salvo que su nombre sugiera masa madre, integral, "
    "vegano, sin azúcar o harinas alternativas. Asigná un score de 0 a 100 (100 = muy saludable). "
    "Devolvé SOLO JSON válido con el formato "
    "{\"spots\": [{\"id\": string, \"score\": number, \"reason\": string, \"tags\": [string]}]}. "
    "Incluí como máximo {limit} entradas con score >= 55, ordenadas por score descendente."
)


@dataclass
class HealthySpot:
    id: str
    name: str
    type: str
    score: int
    reason: str
    latitude: float
    longitude: float
    distance_m: Optional[int] = None
    brand: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def has_bakery_health_hint(store: NearbyStore) -> bool:
    haystack = " ".join(part for part in (store.name, store.brand) if part)
    return bool(haystack) and bool(BAKERY_HEALTH_HINTS.search(haystack))


def is_indulgent_bakery(store: NearbyStore) -> bool:
    return store.store_type == "bakery" and not has_bakery_health_hint(store)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def fallback_score(candidates: Sequence[NearbyStore], limit: int) -> List[HealthySpot]:
    """Deterministic ranking by store type, name keywords and distance."""
    spots = []
    for store in candidates:
        healthy_bakery = has_bakery_health_hint(store)
        tags: List[str] = []
        if store.store_type == "bakery":
            score = 72 if healthy_bakery else 38
            if healthy_bakery:
                tags.append("Pan integral")
        else:
            score = TYPE_BASE_SCORES.get(store.store_type, 55)

        for pattern, boost, tag in KEYWORD_BOOSTS:
            if pattern.search(store.name or ""):
                score += boost
                tags.append(tag)

        penalty = min(store.distance / 100, 20) if store.distance else 0
        score = _clamp(score - penalty, 30, 99)

        reason = [store.store_type.replace("_", " ")]
        if tags:
            reason.append(", ".join(tags))

        spots.append(HealthySpot(
            id=store.osm_id,
            name=store.name,
            brand=store.brand,
            type=store.store_type,
            score=round(score),
            reason=" · ".join(reason),
            tags=tags,
            distance_m=store.distance,
            latitude=store.latitude,
            longitude=store.longitude,
        ))

    spots.sort(key=lambda s: s.score, reverse=True)
    return spots[:limit]


class SpotRanker:
    """Scores candidates with the language model, falling back to heuristics."""

    def __init__(self, client: Optional[groq.AsyncGroq] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GROQ_MODEL
        self.logger = logger.bind(service="spot_ranker")

    @property
    def client(self) -> Optional[groq.AsyncGroq]:
        if self._client is None:
            self._client = get_groq_client()
        return self._client

    async def rank(self, stores: Sequence[NearbyStore], limit: int = DEFAULT_LIMIT) -> List[HealthySpot]:
        """Best ``limit`` healthy spots among ``stores``.

        Traditional bakeries are discarded before scoring.
        """
        limit = int(_clamp(limit, 1, MAX_LIMIT))
        candidates = [s for s in stores if s.name][:MAX_CANDIDATES]
        candidates = [s for s in candidates if not is_indulgent_bakery(s)]
        if not candidates:
            return []

        ranked = await self._score_with_llm(candidates, limit)
        if ranked:
            return ranked

        self.logger.info("spot_ranker_fallback", candidates=len(candidates))
        return fallback_score(candidates, limit)

    async def _score_with_llm(self, candidates: List[NearbyStore], limit: int) -> List[HealthySpot]:
        client = self.client
        if client is None:
            return []

        payload = {
            "candidates": [
                {
                    "id": s.osm_id,
                    "name": s.name,
                    "brand": s.brand,
                    "type": s.store_type,
                    "distance_m": s.distance,
                }
                for s in candidates
            ]
        }
        try:
            response = await client.chat.completions.create(
                model=self.model,
                temperature=0.2,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT.replace("{limit}", str(limit))},
                    {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
                ],
            )
            data = parse_json_object(response.choices[0].message.content)
        except groq.APIError as e:
            self.logger.warning("spot_scoring_failed", error=str(e))
            return []
        except (ValueError, IndexError, AttributeError) as e:
            self.logger.warning("spot_scoring_invalid_response", error=str(e))
            return []

        items = data.get("spots") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []

        by_id: Dict[str, NearbyStore] = {s.osm_id: s for s in candidates}
        spots = []
        for item in items:
            spot = self._to_spot(item, by_id)
            if spot is not None and spot.score >= MIN_LLM_SCORE:
                spots.append(spot)

        spots.sort(key=lambda s: s.score, reverse=True)
        return spots[:limit]

    @staticmethod
    def _to_spot(item: Any, by_id: Dict[str, NearbyStore]) -> Optional[HealthySpot]:
        if not isinstance(item, dict):
            return None
        store = by_id.get(str(item.get("id")))
        if store is None:
            return None
        try:
            score = float(item.get("score", 0))
        except (TypeError, ValueError):
            score = 0.0
        tags = item.get("tags") if isinstance(item.get("tags"), list) else []
        return HealthySpot(
            id=store.osm_id,
            name=store.name,
            brand=store.brand,
            type=store.store_type,
            score=round(_clamp(score, 0, 100)),
            reason=item.get("reason") if isinstance(item.get("reason"), str) else "",
            tags=[t for t in tags if isinstance(t, str)],
            distance_m=store.distance,
            latitude=store.latitude,
            longitude=store.longitude,
        )
