"""Playwright browser lifecycle manager with anti-detection.

Backs the in-process render backend: one shared Chromium instance with a
stealth-patched context per renderer.
"""

import asyncio
from typing import Optional, Dict

import structlog
from playwright.async_api import async_playwright, Browser, BrowserContext, Playwright


logger = structlog.get_logger()


class BrowserManager:
    """Manages Playwright browser lifecycle with anti-detection features.

    Creates and pools browser contexts with:
    - A desktop Chrome user agent and es-AR locale
    - Stealth JS injection to bypass bot detection
    - Resource blocking (images/fonts) for faster rendering
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: Optional[str] = None,
        block_resources: bool = True,
    ):
        self._headless = headless
        self._user_agent = user_agent or DESKTOP_USER_AGENT
        self._block_resources = block_resources
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._contexts: Dict[str, BrowserContext] = {}

    async def start(self) -> None:
        """Launch the browser. Safe to call repeatedly."""
        async with self._lock:
            if self._browser:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                ],
            )
            logger.info("browser_started", headless=self._headless)

    async def stop(self) -> None:
        """Close all contexts and the browser."""
        async with self._lock:
            for name, ctx in self._contexts.items():
                try:
                    await ctx.close()
                except Exception as e:
                    logger.debug("browser_context_close_failed", name=name, error=str(e))
            self._contexts.clear()

            if self._browser:
                await self._browser.close()
                self._browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
            logger.info("browser_stopped")

    async def get_context(self, name: str = "default") -> BrowserContext:
        """Get or create a named browser context."""
        if name in self._contexts:
            return self._contexts[name]

        if not self._browser:
            await self.start()

        context = await self._browser.new_context(
            user_agent=self._user_agent,
            viewport={"width": 1920, "height": 1080},
            locale="es-AR",
            timezone_id="America/Argentina/Buenos_Aires",
            java_script_enabled=True,
            bypass_csp=True,
        )

        await context.add_init_script(STEALTH_JS)

        if self._block_resources:
            await context.route(
                "**/*.{png,jpg,jpeg,gif,webp,woff,woff2,ttf,eot}",
                lambda route: route.abort(),
            )

        self._contexts[name] = context
        logger.info("browser_context_created", name=name)
        return context

    async def new_page(self, name: str = "default"):
        """Convenience: get context and open a new page."""
        ctx = await self.get_context(name)
        return await ctx.new_page()


DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Minimal stealth JS to mask automation signals
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['es-AR', 'es', 'en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""


_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Get the global BrowserManager singleton."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager
