"""Headless rendering backends for JavaScript-heavy supermarket sites.

Two interchangeable implementations of the same contract:

- ``HeadlessRenderClient`` posts to an external render service
  (``POST {HEADLESS_RENDER_URL}/api/render``) and is the default.
- ``LocalBrowserRenderer`` drives an in-process Playwright Chromium.

Neither retries: a failed render raises RenderError and the calling
adapter decides what to do.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import structlog

from nutriscout.config import settings
from nutriscout.core.exceptions import RenderError
from nutriscout.scrapers.utils.browser_manager import BrowserManager, DESKTOP_USER_AGENT, get_browser_manager

logger = structlog.get_logger(__name__)

DEFAULT_WAIT_MS = 5000


class RenderClient(ABC):
    """Renders a URL in a real browser and returns the final HTML."""

    @abstractmethod
    async def render(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        scroll_count: int = 0,
        cookies: Optional[List[Dict[str, Any]]] = None,
        extra_wait_ms: int = 0,
    ) -> str:
        """Return rendered HTML for ``url``.

        Raises:
            RenderError: on non-2xx responses, transport failures or empty HTML
        """
        pass

    async def aclose(self) -> None:
        pass


class HeadlessRenderClient(RenderClient):
    """Client for the remote headless render service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.HEADLESS_RENDER_URL).rstrip("/")
        self.token = token if token is not None else settings.HEADLESS_RENDER_TOKEN
        self.timeout = timeout or settings.RENDER_TIMEOUT_SECONDS
        self._client = http_client
        self._owns_client = http_client is None
        self.logger = logger.bind(service="render_client", backend="remote")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def render(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        scroll_count: int = 0,
        cookies: Optional[List[Dict[str, Any]]] = None,
        extra_wait_ms: int = 0,
    ) -> str:
        payload = {
            "url": url,
            "stealthMode": True,
            "behaviorSimulation": scroll_count > 0,
            "scrollCount": scroll_count,
            "wait": wait_selector or DEFAULT_WAIT_MS,
            "extraWaitMs": extra_wait_ms,
            "cookies": cookies or [],
            "userAgent": DESKTOP_USER_AGENT,
            "viewport": {"width": 1920, "height": 1080},
        }
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/render",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            self.logger.warning("render_transport_failed", url=url, error=str(e))
            raise RenderError(url, f"transport error: {e}") from e

        if response.status_code >= 300:
            self.logger.warning("render_failed", url=url, status_code=response.status_code)
            raise RenderError(url, f"render service returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RenderError(url, "render service returned invalid JSON") from e

        html = (data.get("html") or data.get("content") or "") if isinstance(data, dict) else ""
        if not html:
            raise RenderError(url, "render service returned empty HTML")

        self.logger.info("page_rendered", url=url, html_chars=len(html))
        return html

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class LocalBrowserRenderer(RenderClient):
    """In-process renderer using the shared Playwright browser."""

    def __init__(self, browser_manager: Optional[BrowserManager] = None, timeout: Optional[float] = None):
        self.browser_manager = browser_manager or get_browser_manager()
        self.timeout_ms = int((timeout or settings.RENDER_TIMEOUT_SECONDS) * 1000)
        self.logger = logger.bind(service="render_client", backend="local")

    async def render(
        self,
        url: str,
        wait_selector: Optional[str] = None,
        scroll_count: int = 0,
        cookies: Optional[List[Dict[str, Any]]] = None,
        extra_wait_ms: int = 0,
    ) -> str:
        page = await self.browser_manager.new_page("render")
        try:
            if cookies:
                await page.context.add_cookies(cookies)
            await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            if wait_selector:
                await page.wait_for_selector(wait_selector, timeout=min(self.timeout_ms, 30000))
            else:
                await page.wait_for_timeout(DEFAULT_WAIT_MS)
            for _ in range(scroll_count):
                await page.mouse.wheel(0, 1500)
                await page.wait_for_timeout(600)
            if extra_wait_ms:
                await page.wait_for_timeout(extra_wait_ms)
            html = await page.content()
        except Exception as e:
            self.logger.warning("render_failed", url=url, error=str(e))
            raise RenderError(url, str(e)) from e
        finally:
            await page.close()

        if not html:
            raise RenderError(url, "empty HTML")
        self.logger.info("page_rendered", url=url, html_chars=len(html))
        return html

    async def aclose(self) -> None:
        await self.browser_manager.stop()


_render_client: Optional[RenderClient] = None


def get_render_client() -> RenderClient:
    """Get the configured render backend (RENDER_BACKEND=remote|local)."""
    global _render_client
    if _render_client is None:
        if settings.RENDER_BACKEND == "local":
            _render_client = LocalBrowserRenderer()
        else:
            _render_client = HeadlessRenderClient()
        logger.info("render_client_initialized", backend=settings.RENDER_BACKEND)
    return _render_client
