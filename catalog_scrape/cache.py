from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from .schema import CatalogSnapshot, Product


def _aware(ts: datetime) -> datetime:
    # naive timestamps in older artifacts are UTC
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class StalenessCache:
    """
    Products from earlier runs, keyed by detail-page URL. Built once before
    any fetching starts and never written afterwards.
    """

    def __init__(self, products: Dict[str, Product], fresh_for: timedelta):
        self._products = products
        self.fresh_for = fresh_for

    @classmethod
    def from_snapshots(cls, *snapshots: Optional[CatalogSnapshot], fresh_days: float = 7.0) -> "StalenessCache":
        # later snapshots win
        index: Dict[str, Product] = {}
        for snapshot in snapshots:
            if snapshot is None:
                continue
            for product in snapshot.iter_products():
                index[product.link] = product
        return cls(index, timedelta(days=fresh_days))

    def __len__(self):
        return len(self._products)

    def get(self, url: str) -> Optional[Product]:
        return self._products.get(url)

    def is_fresh(self, url: str, now: datetime) -> bool:
        product = self._products.get(url)
        if product is None or product.updated_at is None:
            return False
        if _aware(now) - _aware(product.updated_at) > self.fresh_for:
            return False
        # records salvaged from a fallback parse without body text get re-fetched
        return bool(product.description and product.description.strip())

    def lookup(self, url: str, now: datetime) -> Optional[Product]:
        return self._products[url] if self.is_fresh(url, now) else None
