import logging
from typing import Dict, List

from .adapters.adapter_markaz import find_product_links
from .normalizer import link_key

logger = logging.getLogger(__name__)

VIEWPORT_SCROLL_JS = "() => window.scrollBy(0, window.innerHeight || 900)"
WHEEL_DELTA = 900
CLICK_TIMEOUT_MS = 5000
NEXT_LABELS = ("Next", "next", "›", "»", ">")


class LinkSet:
    """Insertion-ordered product URLs keyed by normalized path."""

    def __init__(self):
        self._links: Dict[str, str] = {}

    def add_all(self, urls) -> int:
        added = 0
        for url in urls:
            key = link_key(url)
            if key not in self._links:
                self._links[key] = url
                added += 1
        return added

    def __len__(self):
        return len(self._links)

    def urls(self) -> List[str]:
        return list(self._links.values())


async def harvest(page, links: LinkSet) -> int:
    html = await page.content()
    return links.add_all(find_product_links(html, page.url))


async def scroll_drive(page, links: LinkSet, *, pause_ms: int, stable_rounds: int, max_steps: int) -> int:
    """
    Scroll one viewport at a time until the link count stops changing for
    `stable_rounds` consecutive steps, or `max_steps` is reached.
    """
    await harvest(page, links)
    stable = 0
    steps = 0
    while steps < max_steps and stable < stable_rounds:
        steps += 1
        await page.evaluate(VIEWPORT_SCROLL_JS)
        # some listings only load more on native wheel events
        await page.mouse.wheel(0, WHEEL_DELTA)
        await page.wait_for_timeout(pause_ms)
        if await harvest(page, links):
            stable = 0
        else:
            stable += 1
    logger.debug("scroll stopped after %d steps with %d links (%s)", steps, len(links), page.url)
    return steps


async def _click_first(page, selector: str) -> bool:
    loc = page.locator(selector)
    if not await loc.count():
        return False
    try:
        await loc.first.click(timeout=CLICK_TIMEOUT_MS)
    except Exception as e:
        logger.debug("pagination click failed for %s: %s", selector, e)
        return False
    return True


async def click_next_page(page, number: int) -> bool:
    """Activate the control for page `number`, else a generic "next" control."""
    candidates = [
        f"a:text-is('{number}')",
        f"button:text-is('{number}')",
        "a[rel='next']",
        "[aria-label*='next' i]",
    ]
    candidates += [f"a:text-is('{label}')" for label in NEXT_LABELS]
    candidates += [f"button:text-is('{label}')" for label in NEXT_LABELS]
    for selector in candidates:
        if await _click_first(page, selector):
            return True
    return False


async def paginate(page, links: LinkSet, *, pause_ms: int, max_pages: int) -> int:
    clicks = 0
    number = 2
    while clicks < max_pages:
        if not await click_next_page(page, number):
            break
        clicks += 1
        number += 1
        await page.wait_for_timeout(pause_ms)
        if not await harvest(page, links):
            break
    logger.debug("pagination stopped after %d clicks with %d links (%s)", clicks, len(links), page.url)
    return clicks


async def enumerate_product_links(
    page,
    *,
    pause_ms: int = 700,
    stable_rounds: int = 4,
    max_steps: int = 60,
    pagination_floor: int = 20,
    max_pages: int = 50,
    limit: int = 0,
) -> List[str]:
    """
    Every product URL reachable from an already-loaded subcategory page, in
    discovery order. Pagination is only tried when scrolling found fewer than
    `pagination_floor` links. `limit` of 0 keeps everything.
    """
    links = LinkSet()
    await scroll_drive(page, links, pause_ms=pause_ms, stable_rounds=stable_rounds, max_steps=max_steps)
    if len(links) < pagination_floor:
        await paginate(page, links, pause_ms=pause_ms, max_pages=max_pages)

    urls = links.urls()
    if limit:
        urls = urls[:limit]
    return urls
