from datetime import datetime, timedelta, timezone

from catalog_scrape.cache import StalenessCache
from catalog_scrape.schema import CatalogSnapshot, Category, Product, Subcategory

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
URL = "https://www.shop.markaz.app/explore/product/lawn-1"


def make_product(url=URL, age=timedelta(days=1), description="Three piece lawn suit.", title="Lawn 1"):
    return Product(
        id=url.rsplit("/", 1)[-1], title=title, link=url, description=description,
        price=2500, currency="PKR", updated_at=NOW - age,
    )


def snapshot_of(*products):
    return CatalogSnapshot(categories=[
        Category(name="Women", url="https://x/women", subcategories=[
            Subcategory(name="Stitched", url="https://x/women/stitched", products=list(products)),
        ]),
    ])


def cache_with(product, days=7):
    return StalenessCache.from_snapshots(snapshot_of(product), fresh_days=days)


def test_exactly_at_window_is_fresh():
    assert cache_with(make_product(age=timedelta(days=7))).is_fresh(URL, NOW)


def test_just_past_window_is_stale():
    assert not cache_with(make_product(age=timedelta(days=7.01))).is_fresh(URL, NOW)


def test_missing_description_is_never_fresh():
    assert not cache_with(make_product(description=None)).is_fresh(URL, NOW)
    assert not cache_with(make_product(description="   ")).is_fresh(URL, NOW)


def test_unknown_url_is_not_fresh():
    cache = cache_with(make_product())

    assert not cache.is_fresh(URL + "-other", NOW)
    assert cache.lookup(URL + "-other", NOW) is None


def test_lookup_returns_record_unchanged():
    product = make_product(age=timedelta(days=2))
    cached = cache_with(product).lookup(URL, NOW)

    assert cached == product
    assert cached.updated_at == NOW - timedelta(days=2)


def test_later_snapshot_wins():
    old = make_product(title="Old title", age=timedelta(days=30))
    new = make_product(title="New title", age=timedelta(hours=3))

    cache = StalenessCache.from_snapshots(snapshot_of(old), None, snapshot_of(new), fresh_days=7)

    assert len(cache) == 1
    assert cache.lookup(URL, NOW).title == "New title"


def test_naive_timestamps_are_treated_as_utc():
    product = make_product()
    product.updated_at = (NOW - timedelta(days=1)).replace(tzinfo=None)

    assert cache_with(product).is_fresh(URL, NOW)
