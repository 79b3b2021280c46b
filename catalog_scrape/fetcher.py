import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright
from playwright_stealth import Stealth

from .adapters.adapter_markaz import Link, find_category_links, find_subcategory_links
from .config import Settings
from .errors import FetchError
from .listing import enumerate_product_links

logger = logging.getLogger(__name__)

UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
VIEWPORT = {"width": 1366, "height": 900}
LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

LISTING_SETTLE_MS = 1200
PAGE_SETTLE_MS = 1000
PRODUCT_SETTLE_MS = 800


async def init_browser(p, headless: bool = True):
    browser = await p.chromium.launch(headless=headless, args=LAUNCH_ARGS)
    context = await browser.new_context(viewport=VIEWPORT, user_agent=UA)
    return browser, context


async def auto_scroll(page, rounds: int = 3, pause_ms: int = 500):
    """Scroll to the bottom until the document stops growing."""
    prev = 0
    for _ in range(rounds):
        height = await page.evaluate("() => document.body ? document.body.scrollHeight : 0")
        if height == prev:
            break
        prev = height
        await page.evaluate("(y) => window.scrollTo(0, y)", height)
        await page.wait_for_timeout(pause_ms)


class BrowserFetcher:
    """Page-level operations the crawler needs, over one browser context."""

    def __init__(self, context, settings: Settings):
        self.context = context
        self.settings = settings

    @asynccontextmanager
    async def open_page(self, url: str, settle_ms: int = PAGE_SETTLE_MS):
        page = await self.context.new_page()
        try:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=self.settings.nav_timeout_ms)
            except PlaywrightError as e:
                raise FetchError(url, str(e).splitlines()[0] if str(e) else type(e).__name__) from e
            await page.wait_for_timeout(settle_ms)
            yield page
        finally:
            try:
                await page.close()
            except Exception:
                logger.debug("page close failed for %s", url)

    async def _with_timeout(self, url: str, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.settings.task_timeout_s)
        except asyncio.TimeoutError as e:
            raise FetchError(url, f"timed out after {self.settings.task_timeout_s:g}s") from e

    async def fetch_html(self, url: str, scroll_rounds: int = 3, settle_ms: int = PRODUCT_SETTLE_MS) -> str:
        async def _fetch():
            async with self.open_page(url, settle_ms=settle_ms) as page:
                if scroll_rounds:
                    await auto_scroll(page, rounds=scroll_rounds)
                return await page.content()

        return await self._with_timeout(url, _fetch())

    async def category_links(self) -> List[Link]:
        html = await self.fetch_html(self.settings.entry_url, scroll_rounds=0, settle_ms=LISTING_SETTLE_MS)
        return find_category_links(html, self.settings.base_url)

    async def subcategory_links(self, category: Link) -> List[Link]:
        html = await self.fetch_html(category.url, scroll_rounds=0, settle_ms=PAGE_SETTLE_MS)
        return find_subcategory_links(html, category)

    async def product_links(self, url: str) -> List[str]:
        s = self.settings
        # a long listing legitimately scrolls for minutes; only navigation is bounded
        async with self.open_page(url, settle_ms=LISTING_SETTLE_MS) as page:
            return await enumerate_product_links(
                page,
                pause_ms=s.scroll_pause_ms,
                stable_rounds=s.scroll_stable_rounds,
                max_steps=s.scroll_max_steps,
                pagination_floor=s.pagination_floor,
                max_pages=s.max_pages,
                limit=s.max_products,
            )


@asynccontextmanager
async def open_fetcher(settings: Settings):
    async with Stealth().use_async(async_playwright()) as p:
        browser, context = await init_browser(p, headless=settings.headless)
        logger.info("[INIT] Browser initialized (headless=%s)", settings.headless)
        try:
            yield BrowserFetcher(context, settings)
        finally:
            await context.close()
            await browser.close()
