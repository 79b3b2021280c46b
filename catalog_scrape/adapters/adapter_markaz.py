# adapter_markaz.py
import re
from typing import Dict, List, NamedTuple
from urllib.parse import quote, unquote, urljoin, urlsplit

from bs4 import BeautifulSoup

from ..normalizer import clean_link, link_key

CATEGORY_PREFIX = "/explore/home-page/"
PRODUCT_PREFIX = "/explore/product/"


class Link(NamedTuple):
    name: str
    url: str


def _label(a, fallback: str) -> str:
    text = re.sub(r"\s+", " ", a.get_text(" ", strip=True))
    return text or fallback


def _segments_after(url: str, prefix: str) -> List[str]:
    path = urlsplit(url).path
    idx = path.find(prefix)
    if idx < 0:
        return []
    tail = path[idx + len(prefix):]
    return [unquote(s).strip() for s in tail.split("/") if s.strip()]


def category_url(base_url: str, segment: str) -> str:
    return f"{base_url.rstrip('/')}{CATEGORY_PREFIX}{quote(segment, safe='')}"


def find_category_links(html: str, base_url: str) -> List[Link]:
    """
    Categories linked from the explore page, in first-seen order.
    'Kids', 'kids' and 'K%69ds' collapse to one entry.
    """
    soup = BeautifulSoup(html, "lxml")
    found: Dict[str, Link] = {}
    names = set()

    for a in soup.find_all("a", href=True):
        href = urljoin(base_url, a["href"])
        segments = _segments_after(href, CATEGORY_PREFIX)
        if not segments:
            continue
        root = segments[0]
        key = root.lower()
        if key in found:
            continue
        name = _label(a, root)
        if name.lower() in names:
            continue
        found[key] = Link(name=name, url=category_url(base_url, root))
        names.add(name.lower())
    return list(found.values())


def find_subcategory_links(html: str, category: Link) -> List[Link]:
    """
    Links one segment below the category. The parent segment must be this
    category; menus on category pages also link sibling categories.
    """
    soup = BeautifulSoup(html, "lxml")
    parent = _segments_after(category.url, CATEGORY_PREFIX)
    if not parent:
        return []
    parent_key = parent[0].lower()

    found: Dict[str, Link] = {}
    names = set()
    for a in soup.find_all("a", href=True):
        href = urljoin(category.url, a["href"])
        segments = _segments_after(href, CATEGORY_PREFIX)
        if len(segments) < 2 or segments[0].lower() != parent_key:
            continue
        sub = segments[1]
        key = sub.lower()
        if key in found:
            continue
        name = _label(a, sub)
        if name.lower() in names:
            continue
        found[key] = Link(name=name, url=f"{category.url}/{quote(sub, safe='')}")
        names.add(name.lower())
    return list(found.values())


def find_product_links(html: str, page_url: str) -> List[str]:
    soup = BeautifulSoup(html, "lxml")
    seen = set()
    out: List[str] = []
    for a in soup.find_all("a", href=True):
        href = a["href"]
        if PRODUCT_PREFIX not in href:
            continue
        url = clean_link(href, page_url)
        if PRODUCT_PREFIX not in urlsplit(url).path:
            continue
        key = link_key(url)
        if key in seen:
            continue
        seen.add(key)
        out.append(url)
    return out
