"""Custom exception classes for the application."""


class NutriScoutException(Exception):
    """Base exception for all NutriScout errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(NutriScoutException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class ScraperError(NutriScoutException):
    """Raised when a scraper encounters an error."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Scraper error for {source}: {message}")


class RenderError(ScraperError):
    """Raised when the headless render backend fails to return HTML."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__("render", f"{url}: {message}")


class AdapterRegistryError(NutriScoutException):
    """Raised at startup when a supported brand or source type has no adapter."""
