from __future__ import annotations

import re
import unicodedata
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from book2pdf.constants import (
    ASSET_PATH_MARKERS,
    ASSET_SUFFIXES,
    INDEX_WIDTH,
    MAX_TITLE_SLUG,
    PAGE_FILE_RE,
)


def extract_url(text_or_url: str) -> str:
    """
    Accept raw URLs **or** Markdown links `[txt](url)` and return just the URL.
    """
    md_match = re.match(r".*?\((https?://[^\s)]+)\)", text_or_url)
    return md_match.group(1) if md_match else text_or_url.strip()


def is_http_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


_DEFAULT_PORTS = {"http": 80, "https": 443}


def _netloc(parts) -> str:
    host = (parts.hostname or "").lower()
    if parts.port and parts.port != _DEFAULT_PORTS.get(parts.scheme.lower()):
        host = f"{host}:{parts.port}"
    return host


def strip_fragment(url: str) -> str:
    parts = urlsplit(url)
    return urlunsplit(parts._replace(fragment=""))


def normalize_url(url: str) -> str:
    """
    Identity key for a page: lower-case scheme/host, no default port, no
    fragment and no trailing slash. ``/docs/`` and ``/docs#intro`` collapse
    to the same key; the query string is kept.
    """
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), _netloc(parts), path, parts.query, ""))


def same_site(a: str, b: str) -> bool:
    pa, pb = urlsplit(a), urlsplit(b)
    return _netloc(pa) == _netloc(pb)


def resolve_href(href: Optional[str], base_url: str) -> Optional[str]:
    """
    Absolute, fragment-free URL for a navigation ``href`` or *None* when the
    link cannot be a documentation page (anchors, scripts, assets, other sites).
    """
    if href is None:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    if href.lower().startswith(("javascript:", "mailto:", "tel:", "data:")):
        return None

    url = strip_fragment(urljoin(base_url, href))
    if not is_http_url(url) or not same_site(url, base_url):
        return None

    path = urlsplit(url).path.lower()
    if any(marker in path for marker in ASSET_PATH_MARKERS):
        return None
    dot = path.rfind(".")
    if dot > path.rfind("/") and path[dot:] in ASSET_SUFFIXES:
        return None
    return url


def sanitize_title(text: str) -> str:  # noqa: D401 - short
    """Return a filesystem-safe, *idempotent* lower-case ASCII slug."""
    ascii_txt = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    ascii_txt = re.sub(r"[^a-z0-9]+", "-", ascii_txt.lower())
    ascii_txt = ascii_txt[:MAX_TITLE_SLUG].strip("-")
    return ascii_txt or "page"


def index_width(count: int) -> int:
    """Zero-padding for a run whose largest index is *count*."""
    return max(INDEX_WIDTH, len(str(count)))


def page_filename(order_index: int, title: str, width: int = INDEX_WIDTH) -> str:
    return f"{order_index:0{width}d}-{sanitize_title(title)}.pdf"


def parse_page_filename(name: str) -> Optional[Tuple[int, str]]:
    """``0007-getting-started.pdf`` -> ``(7, "getting-started")``."""
    m = PAGE_FILE_RE.match(name)
    if not m:
        return None
    return int(m.group("index")), m.group("slug")


def host_slug(url: str) -> str:
    host = urlsplit(url).hostname or "book"
    return sanitize_title(host.replace(".", "-"))


# ----------  Client-Hint header generator (ported from JS) ---------- #
def sec_ch_headers(user_agent: str) -> Dict[str, str]:
    """
    Return a dict with `Sec-CH-UA*` headers derived from *user_agent*.
    Pure function → easy to unit-test.
    """
    ua = user_agent.lower()
    headers: Dict[str, str] = {}

    # Platform
    if "android" in ua:
        platform = "Android"
    elif "iphone" in ua or "ipad" in ua:
        platform = "iOS"
    elif "win" in ua:
        platform = "Windows"
    elif "macintosh" in ua:
        platform = "macOS"
    elif "linux" in ua:
        platform = "Linux"
    else:
        platform = "Unknown"
    headers["Sec-CH-UA-Platform"] = f'"{platform}"'

    is_mobile = any(x in ua for x in ("mobi", "android", "iphone")) or platform in (
        "Android",
        "iOS",
    )
    headers["Sec-CH-UA-Mobile"] = "?1" if is_mobile else "?0"

    # Brands - only Chromium engines send these
    m = re.search(r"(edg)/(\d+)", ua) or re.search(r"(chrome)/(\d+)", ua)
    if m:
        brand = "Microsoft Edge" if m.group(1) == "edg" else "Google Chrome"
        headers["Sec-CH-UA"] = (
            f'"Not_A Brand";v="8", "Chromium";v="{m.group(2)}", '
            f'"{brand}";v="{m.group(2)}"'
        )
    else:
        headers["Sec-CH-UA"] = '"Not_A Brand";v="99"'
    return headers
