from datetime import datetime
from typing import Dict, Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from .schema import Product


def clean_link(href: str, base_url: Optional[str] = None) -> str:
    """Absolute URL with query string and fragment removed."""
    abs_url = urljoin(base_url, href) if base_url else href
    parts = urlsplit(abs_url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def link_key(url: str) -> str:
    # query-string variants of one product share a key
    path = urlsplit(url).path.rstrip("/")
    return path or "/"


def make_id(url: str, code: Optional[str] = None) -> str:
    if code:
        return code
    segments = [s for s in urlsplit(url).path.split("/") if s]
    return segments[-1] if segments else url


def normalize(url: str, raw: Dict, updated_at: datetime) -> Product:
    code = raw.get("code") or None
    images = [img for img in (raw.get("images") or []) if img]
    return Product(
        id=make_id(url, code),
        title=raw.get("title") or "Unknown Product",
        code=code,
        brand=raw.get("brand") or None,
        price=raw.get("price"),
        currency=raw.get("currency") or None,
        images=images,
        description=raw.get("description") or None,
        link=url,
        updated_at=updated_at,
    )
