"""Groq client factory and JSON helpers shared by LLM-backed components."""

import json
import re
from typing import Any, Optional

import structlog
from groq import AsyncGroq

from nutriscout.config import settings

logger = structlog.get_logger(__name__)

_FENCE_START = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_END = re.compile(r"\s*```$")

_groq_client: Optional[AsyncGroq] = None


def get_groq_client() -> Optional[AsyncGroq]:
    """Return the shared AsyncGroq client, or None when no key is configured.

    SDK-level retries are disabled; callers decide how to react to rate
    limits instead of the client sleeping and retrying on its own.
    """
    global _groq_client
    if _groq_client is None:
        api_key = settings.GROQ_API_KEY.strip()
        if not api_key:
            logger.warning("groq_client_disabled", reason="GROQ_API_KEY not set")
            return None
        _groq_client = AsyncGroq(
            api_key=api_key,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _groq_client


def parse_json_object(raw: Optional[str]) -> Any:
    """Parse model output that should be JSON, tolerating markdown fences.

    Raises:
        json.JSONDecodeError: if the content is not valid JSON
    """
    text = (raw or "").strip()
    text = _FENCE_START.sub("", text)
    text = _FENCE_END.sub("", text)
    return json.loads(text)
