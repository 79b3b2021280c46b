"""Read-only access to a finished catalog snapshot."""

import logging
import re
from pathlib import Path
from typing import Iterator, Optional

from slugify import slugify

from .checkpoint import read_snapshot
from .schema import CatalogSnapshot, Category, Product, Subcategory

logger = logging.getLogger(__name__)

# applied in order; "Mens Stitchd" and "Men's Stitched" share a key
_REWRITES = [
    (re.compile(r"women'?s"), "women"),
    (re.compile(r"men'?s"), "men"),
    (re.compile(r"unstitch(?:ed|d)"), "unstitched"),
    (re.compile(r"(?<!un)stitch(?:ed|d)"), "stitched"),
    (re.compile(r"hand\s*bags?"), "handbag"),
    (re.compile(r"shawls?"), "shawl"),
    (re.compile(r"accessories|accessory"), "accessory"),
    (re.compile(r"undergarments?"), "undergarment"),
    (re.compile(r"kids?"), "kid"),
    (re.compile(r"home\s+essentials?"), "home essential"),
    (re.compile(r"&"), "and"),
    (re.compile(r"[^\w]"), ""),
]

_ALIASES = {
    "autobikeaccessory": "autoaccessory",
    "homelinen": "homeessential",
    "fashionaccessory": "accessory",
    "festivecollection": "festive",
    "freedelivery": "delivery",
}


def name_key(label: str) -> str:
    """Canonical lookup key for a category or subcategory label."""
    key = (label or "").lower()
    for pattern, repl in _REWRITES:
        key = pattern.sub(repl, key)
    return _ALIASES.get(key, key)


def slug(label: str) -> str:
    return slugify(label or "")


def load_catalog(path: Path) -> CatalogSnapshot:
    snapshot = read_snapshot(Path(path))
    if snapshot is None:
        logger.warning("No catalog at %s; serving an empty one", path)
        return CatalogSnapshot()
    return snapshot


def find_category(snapshot: CatalogSnapshot, label: str) -> Optional[Category]:
    wanted = slug(label)
    for cat in snapshot.categories:
        if slug(cat.name) == wanted:
            return cat
    key = name_key(label)
    for cat in snapshot.categories:
        if name_key(cat.name) == key:
            return cat
    return None


def find_subcategory(category: Category, label: str) -> Optional[Subcategory]:
    wanted = slug(label)
    for sub in category.subcategories:
        if slug(sub.name) == wanted:
            return sub
    key = name_key(label)
    for sub in category.subcategories:
        if name_key(sub.name) == key:
            return sub
    return None


def iter_products(snapshot: CatalogSnapshot) -> Iterator[Product]:
    return snapshot.iter_products()


def find_product(snapshot: CatalogSnapshot, product_id: str) -> Optional[Product]:
    for product in snapshot.iter_products():
        if product.id == product_id:
            return product
    return None
