import asyncio
import json
import random
from datetime import datetime, timedelta, timezone

import pytest

from catalog_scrape.adapters.adapter_markaz import Link
from catalog_scrape.config import Settings
from catalog_scrape.errors import FetchError

BASE = "https://www.shop.markaz.app"
T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class Interrupted(BaseException):
    """Stands in for the process being killed mid-crawl."""


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def product_html(title: str, price="1,250", sku=None, description="Soft lawn cotton, 3 piece."):
    node = {
        "@context": "https://schema.org",
        "@type": "Product",
        "name": title,
        "image": [f"https://cdn.markaz.app/{title}/1.jpg", f"https://cdn.markaz.app/{title}/2.jpg"],
        "offers": {"@type": "Offer", "price": price},
    }
    if sku:
        node["sku"] = sku
    if description is not None:
        node["description"] = description
    return (
        "<html><head><title>Markaz</title>"
        f'<script type="application/ld+json">{json.dumps(node)}</script>'
        f"</head><body><h1>{title}</h1></body></html>"
    )


class FakeFetcher:
    """
    In-memory site: {category: {subcategory: [product slugs]}}. Product pages
    are JSON-LD documents whose title is the slug.
    """

    def __init__(self, site, *, failing=(), flaky=(), latency=0.0, descriptions=None):
        self.site = site
        self.failing = set(failing)
        self.flaky = set(flaky)
        self.latency = latency
        self.descriptions = descriptions or {}
        self.fetched = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.listed = []
        self.fail_listing = set()
        self.fail_discovery = set()
        self.interrupt_at = None
        self._listings = {}

    async def category_links(self):
        return [Link(name, f"{BASE}/explore/home-page/{name}") for name in self.site]

    async def subcategory_links(self, category: Link):
        if category.name in self.fail_discovery:
            raise FetchError(category.url, "category page did not load")
        subs = []
        for name, slugs in self.site[category.name].items():
            url = f"{category.url}/{name}"
            self._listings[url] = [f"{BASE}/explore/product/{s}" for s in slugs]
            subs.append(Link(name, url))
        return subs

    async def product_links(self, url):
        self.listed.append(url)
        if url == self.interrupt_at:
            raise Interrupted(url)
        if url in self.fail_listing:
            raise FetchError(url, "listing did not load")
        return list(self._listings[url])

    async def fetch_html(self, url):
        self.fetched.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(random.uniform(0, self.latency))
            if url in self.failing:
                raise FetchError(url, "timed out")
            if url in self.flaky:
                self.flaky.discard(url)
                raise FetchError(url, "navigation reset")
            slug = url.rsplit("/", 1)[-1]
            return product_html(slug, description=self.descriptions.get(slug, "Soft lawn cotton, 3 piece."))
        finally:
            self.in_flight -= 1


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        output_path=tmp_path / "catalog.json",
        concurrency=3,
        fresh_days=7,
        progress_every=5,
    )


@pytest.fixture()
def site():
    return {
        "Women": {
            "Stitched": ["lawn-suit-1", "lawn-suit-2", "lawn-suit-3", "lawn-suit-4"],
            "Unstitched": ["khaddar-1", "khaddar-2"],
        },
        "Men": {
            "Kurta": ["kurta-1", "kurta-2", "kurta-3"],
        },
        "Kids": {},
    }
