import json
import math
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

DEFAULT_CURRENCY = "PKR"

PRICE_RE = re.compile(r"(?<![A-Za-z])(?:Rs\.?|PKR|₨)\s*(\d[\d,]*(?:\.\d+)?)", re.IGNORECASE)
CODE_RE = re.compile(
    r"(?:SKU|Product\s*Code|Item\s*Code|Style\s*#)\s*[:#]?\s*([A-Za-z0-9\-_/]+)",
    re.IGNORECASE,
)


def _safe_json_loads(text: str):
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return None


def _is_product(node: Any) -> bool:
    if not isinstance(node, dict):
        return False
    t = node.get("@type")
    return t == "Product" or (isinstance(t, list) and "Product" in t)


def _pick_product_node(data: Any) -> Optional[Dict[str, Any]]:
    """
    Given parsed JSON-LD data (dict or list), find the node typed as a
    schema.org Product: the root itself, a list element, or an @graph member.
    """
    if isinstance(data, list):
        candidates = data
    elif isinstance(data, dict):
        graph = data.get("@graph") or []
        if isinstance(graph, dict):
            graph = [graph]
        candidates = [data] + list(graph)
    else:
        return None
    for node in candidates:
        if _is_product(node):
            return node
    return None


def parse_price(value: Any) -> Optional[float]:
    """Numeric price with grouping separators stripped; None when unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        raw = value
    else:
        raw = str(value).replace(",", "").replace(" ", "").strip()
        if not raw:
            return None
    try:
        price = float(raw)
    except (ValueError, OverflowError):
        return None
    # NaN and inf would serialize as null
    return price if math.isfinite(price) else None


def _images(value: Any) -> List[str]:
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]
    out: List[str] = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("url") or item.get("contentUrl")
        if isinstance(item, str) and item.strip():
            out.append(item.strip())
    return out


def _brand(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _meta_content(soup: BeautifulSoup, selector: str) -> Optional[str]:
    node = soup.select_one(selector)
    if node and node.get("content"):
        return node["content"].strip() or None
    return None


def extract_from_ld_json(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        data = _safe_json_loads(script.string or script.get_text() or "")
        if data is None:
            continue
        prod = _pick_product_node(data)
        if not prod:
            continue

        offers = prod.get("offers") or {}
        if isinstance(offers, list):
            offers = offers[0] if offers else {}
        if not isinstance(offers, dict):
            offers = {}
        raw_price = offers.get("price")
        if raw_price is None:
            raw_price = offers.get("lowPrice")
        price = parse_price(raw_price)
        currency = _text(offers.get("priceCurrency"))
        if price is not None and not currency:
            currency = DEFAULT_CURRENCY

        return {
            "title": _text(prod.get("name")),
            "code": _text(prod.get("sku")),
            "brand": _brand(prod.get("brand")),
            "price": price,
            "currency": currency,
            "images": _images(prod.get("image")),
            "description": _text(prod.get("description")),
        }
    return None


def _visible_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    for tag in body.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()
    return body.get_text("\n", strip=True)


def _largest_image(soup: BeautifulSoup) -> Optional[str]:
    best, best_area = None, 0
    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if not src:
            continue
        try:
            w = int(img.get("width") or 0)
            h = int(img.get("height") or 0)
        except ValueError:
            continue
        area = w * h
        if area > best_area:
            best, best_area = src, area
    return best


def extract_fallback(soup: BeautifulSoup, url: Optional[str] = None) -> Dict[str, Any]:
    h1 = soup.find("h1")
    title = " ".join(h1.get_text(" ", strip=True).split()) if h1 else None
    if not title and soup.title and soup.title.string:
        title = soup.title.get_text(strip=True)

    image = _largest_image(soup)
    if image and url:
        image = urljoin(url, image)
    meta_desc = _meta_content(soup, "meta[name='description']")
    text = _visible_text(soup)

    m = PRICE_RE.search(text)
    price = parse_price(m.group(1)) if m else None
    code = CODE_RE.search(text)

    return {
        "title": title or None,
        "code": code.group(1) if code else None,
        "brand": None,
        "price": price,
        "currency": DEFAULT_CURRENCY if m else None,
        "images": [image] if image else [],
        "description": meta_desc or text or None,
    }


def extract_generic(html: str, url: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Normalized product fields from a product page, or None when no path
    produced even a title or a price.
    """
    soup = BeautifulSoup(html, "lxml")

    # 1. JSON-LD Product
    data = extract_from_ld_json(soup)
    if data is not None and (data["title"] or data["price"] is not None):
        if not data["description"]:
            data["description"] = _meta_content(soup, "meta[name='description']")
        if not data["images"]:
            og_img = _meta_content(soup, "meta[property='og:image'], meta[property='og:image:secure_url']")
            if og_img:
                data["images"] = [og_img]
    else:
        # 2. headings, currency markers, <img> dimensions
        data = extract_fallback(soup, url)

    if not data["title"] and data["price"] is None:
        return None
    return data
