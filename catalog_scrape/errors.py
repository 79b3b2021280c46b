class CrawlError(Exception):
    """Base class for crawler failures."""


class ConfigError(CrawlError):
    pass


class FetchError(CrawlError):
    """Navigation failed or a page did not load within its timeout."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class ProductParseError(CrawlError):
    """Neither structured data nor page markup yielded a title or a price."""

    def __init__(self, url: str):
        super().__init__(f"no title or price found at {url}")
        self.url = url


class CrawlAbortedError(CrawlError):
    """The run cannot make progress at all; the checkpoint is left in place."""
