import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .adapters.adapter_markaz import Link
from .cache import StalenessCache
from .checkpoint import CheckpointStore
from .config import Settings, get_settings
from .errors import CrawlAbortedError, CrawlError, ProductParseError
from .fetcher import open_fetcher
from .normalizer import normalize
from .parser_generic import extract_generic
from .pool import map_limit
from .schema import CatalogSnapshot, Product, Subcategory

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def process(url: str, fetcher, now: datetime) -> Product:
    """Fetch one product page and turn it into a record stamped with `now`."""
    html = await fetcher.fetch_html(url)
    raw = extract_generic(html, url)
    if raw is None:
        raise ProductParseError(url)
    return normalize(url, raw, updated_at=now)


class CatalogCrawler:
    """
    Walks categories, then subcategories, then products. Owns the
    checkpoint: it is saved after every finished subcategory and renamed onto
    the final catalog once every category has been visited.
    """

    def __init__(
        self,
        fetcher,
        settings: Settings,
        store: Optional[CheckpointStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.fetcher = fetcher
        self.settings = settings
        self.store = store or CheckpointStore(settings.output_path, settings.resolved_checkpoint_path)
        self.clock = clock
        self.fetch_count = 0
        self.failed_subcategories: List[str] = []
        self.category_order: List[str] = []

    async def run(self) -> CatalogSnapshot:
        checkpoint = self.store.load_checkpoint()
        if checkpoint is not None:
            done = sum(len(c.subcategories) for c in checkpoint.categories)
            logger.info("[RESUME] Continuing from %s (%d subcategories done)", self.store.checkpoint_path, done)
        else:
            checkpoint = CatalogSnapshot()

        cache = StalenessCache.from_snapshots(
            self.store.load_previous(), checkpoint, fresh_days=self.settings.fresh_days
        )
        logger.info("[INIT] %d cached products (fresh for %g days)", len(cache), self.settings.fresh_days)

        categories = await self.discover_categories()
        self.category_order = [c.name for c in categories]
        for i, category in enumerate(categories, 1):
            logger.info("[CATEGORY] %d/%d %s", i, len(categories), category.name)
            await self.crawl_category(category, checkpoint, cache)

        checkpoint.order_categories(self.category_order)
        snapshot = self.store.promote(checkpoint, scraped_at=self.clock())
        logger.info(
            "[DONE] Saved %d categories to %s (%d product fetches, %d subcategories failed)",
            len(snapshot.categories), self.store.final_path, self.fetch_count, len(self.failed_subcategories),
        )
        return snapshot

    async def discover_categories(self) -> List[Link]:
        try:
            categories = await self.fetcher.category_links()
        except Exception as e:
            raise CrawlAbortedError(f"category discovery failed: {e}") from e
        if not categories:
            raise CrawlAbortedError(f"no categories found at {self.settings.entry_url}")
        logger.info("[INIT] Found %d categories", len(categories))
        return categories

    async def crawl_category(self, category: Link, checkpoint: CatalogSnapshot, cache: StalenessCache):
        try:
            subcategories = await self.fetcher.subcategory_links(category)
        except Exception:
            logger.exception("[CATEGORY] Skipping %s: subcategory discovery failed", category.name)
            return
        logger.info("[CATEGORY] %s: %d subcategories", category.name, len(subcategories))

        if not subcategories and checkpoint.find_category(category.name) is None:
            checkpoint.ensure_category(category.name, category.url)
            self.save_checkpoint(checkpoint, category, subcategories)

        for sub in subcategories:
            if checkpoint.has_subcategory(category.name, sub.name):
                logger.info("[RESUME] %s / %s already in checkpoint", category.name, sub.name)
                continue
            try:
                products = await self.crawl_subcategory(sub, cache)
            except Exception:
                logger.exception("[SUBCATEGORY] Skipping %s / %s", category.name, sub.name)
                self.failed_subcategories.append(f"{category.name}/{sub.name}")
                continue
            checkpoint.upsert_subcategory(
                category.name, category.url, Subcategory(name=sub.name, url=sub.url, products=products)
            )
            self.save_checkpoint(checkpoint, category, subcategories)

    def save_checkpoint(self, checkpoint: CatalogSnapshot, category: Link, subcategories: List[Link]):
        """Persist the checkpoint with categories and subcategories in this run's discovery order."""
        checkpoint.find_category(category.name).order_subcategories([s.name for s in subcategories])
        checkpoint.order_categories(self.category_order)
        self.store.save(checkpoint)

    async def crawl_subcategory(self, sub: Link, cache: StalenessCache) -> List[Product]:
        links = await self.fetcher.product_links(sub.url)
        now = self.clock()

        results: List[Optional[Product]] = [None] * len(links)
        missing: List[int] = []
        for i, link in enumerate(links):
            cached = cache.lookup(link, now)
            if cached is not None:
                results[i] = cached
            else:
                missing.append(i)

        logger.info(
            "[SUBCATEGORY] %s: %d links, %d cached, %d to fetch",
            sub.name, len(links), len(links) - len(missing), len(missing),
        )
        fetched = await map_limit(
            [links[i] for i in missing],
            self.settings.concurrency,
            self.fetch_product,
            progress_every=self.settings.progress_every,
            label=f"{sub.name} products",
        )
        for i, product in zip(missing, fetched):
            results[i] = product

        products = [p for p in results if p is not None]
        logger.info("[SUBCATEGORY] %s: %d products", sub.name, len(products))
        return products

    async def fetch_product(self, url: str) -> Product:
        retries = self.settings.retries
        for attempt in range(retries + 1):
            self.fetch_count += 1
            try:
                product = await process(url, self.fetcher, self.clock())
                logger.debug("[JOB] OK   → %s | %s | %s", product.id, product.title, product.price)
                return product
            except Exception as e:
                if attempt == retries:
                    logger.warning("[JOB] DROP → %s | %s: %s", url, type(e).__name__, e)
                    raise
                logger.warning("[JOB] RETRY → %s | %s: %s", url, type(e).__name__, e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl the storefront catalog into a JSON snapshot.")
    parser.add_argument("--concurrency", type=int, help="product pages fetched in parallel")
    parser.add_argument("--max-products", type=int, help="products kept per subcategory (0 = unlimited)")
    parser.add_argument("--fresh-days", type=float, help="reuse cached products younger than this")
    parser.add_argument("--output", type=Path, help="final catalog path")
    parser.add_argument("--checkpoint", type=Path, help="checkpoint path (default: next to the output)")
    parser.add_argument("--headed", action="store_true", help="show the browser window")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING ...")
    return parser


def apply_args(settings: Settings, args: argparse.Namespace) -> Settings:
    update = {}
    for arg, field in [
        ("concurrency", "concurrency"),
        ("max_products", "max_products"),
        ("fresh_days", "fresh_days"),
        ("output", "output_path"),
        ("checkpoint", "checkpoint_path"),
        ("log_level", "log_level"),
    ]:
        value = getattr(args, arg)
        if value is not None:
            update[field] = value
    if args.headed:
        update["headless"] = False
    # model_copy skips validation
    return Settings.model_validate({**settings.model_dump(), **update})


async def main(settings: Settings) -> CatalogSnapshot:
    logger.info("[INIT] Starting catalog crawl of %s", settings.entry_url)
    async with open_fetcher(settings) as fetcher:
        crawler = CatalogCrawler(fetcher, settings)
        return await crawler.run()


def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = apply_args(get_settings(), args)
    except (CrawlError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(main(settings))
    except CrawlAbortedError as e:
        logger.error("[ABORT] %s; checkpoint left at %s", e, settings.resolved_checkpoint_path)
        return 1
    except Exception:
        logger.exception("[ABORT] Crawl failed; checkpoint left at %s", settings.resolved_checkpoint_path)
        return 1
    return 0


if __name__ == "__main__":
    #   python -m catalog_scrape.scrape                  -> crawl everything
    #   python -m catalog_scrape.scrape --max-products 5 -> 5 products per subcategory
    sys.exit(cli())
