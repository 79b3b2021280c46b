from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _by_discovery(order: List[str]):
    rank = {name.strip().lower(): i for i, name in enumerate(order)}
    # names missing from this run keep their relative order at the end
    return lambda item: rank.get(item.name.strip().lower(), len(rank))


class Product(BaseModel):
    id: str                      # code/SKU, else last URL path segment, else the URL
    title: str
    code: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    link: str                    # canonical detail-page URL
    updated_at: datetime = Field(alias="updatedAt")

    model_config = {"populate_by_name": True}

    @property
    def image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # "image" is always present, possibly null
        record["image"] = self.image
        return record


class Subcategory(BaseModel):
    name: str
    url: str
    products: List[Product] = Field(default_factory=list)


class Category(BaseModel):
    name: str
    url: str
    subcategories: List[Subcategory] = Field(default_factory=list)

    def find_subcategory(self, name: str) -> Optional[Subcategory]:
        key = name.strip().lower()
        for sub in self.subcategories:
            if sub.name.strip().lower() == key:
                return sub
        return None

    def order_subcategories(self, names: List[str]) -> None:
        self.subcategories.sort(key=_by_discovery(names))


class CatalogSnapshot(BaseModel):
    scraped_at: Optional[datetime] = Field(default=None, alias="scrapedAt")
    categories: List[Category] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def find_category(self, name: str) -> Optional[Category]:
        key = name.strip().lower()
        for cat in self.categories:
            if cat.name.strip().lower() == key:
                return cat
        return None

    def has_subcategory(self, category_name: str, subcategory_name: str) -> bool:
        cat = self.find_category(category_name)
        return cat is not None and cat.find_subcategory(subcategory_name) is not None

    def ensure_category(self, name: str, url: str) -> Category:
        cat = self.find_category(name)
        if cat is None:
            cat = Category(name=name, url=url)
            self.categories.append(cat)
        return cat

    def upsert_subcategory(self, category_name: str, category_url: str, subcategory: Subcategory) -> None:
        """Replace a same-named subcategory in place, or append it."""
        cat = self.ensure_category(category_name, category_url)
        key = subcategory.name.strip().lower()
        for i, existing in enumerate(cat.subcategories):
            if existing.name.strip().lower() == key:
                cat.subcategories[i] = subcategory
                return
        cat.subcategories.append(subcategory)

    def order_categories(self, names: List[str]) -> None:
        self.categories.sort(key=_by_discovery(names))

    def iter_products(self):
        for cat in self.categories:
            for sub in cat.subcategories:
                yield from sub.products

    def to_record(self) -> Dict[str, Any]:
        return {
            "scrapedAt": self.model_dump(mode="json", by_alias=True, include={"scraped_at"})["scrapedAt"],
            "categories": [
                {
                    "name": cat.name,
                    "url": cat.url,
                    "subcategories": [
                        {
                            "name": sub.name,
                            "url": sub.url,
                            "products": [p.to_record() for p in sub.products],
                        }
                        for sub in cat.subcategories
                    ],
                }
                for cat in self.categories
            ],
        }
