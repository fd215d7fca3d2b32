"""Optional title page rendered as ``0000-cover.pdf`` ahead of the content."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

_LOGO_SELECTORS = (
    'img[alt*="logo" i]',
    'img[src*="logo" i]',
    'img[class*="logo" i]',
    ".navbar__logo img",
    ".navbar-brand img",
    "header img",
)


@dataclass(frozen=True)
class SiteInfo:
    title: str
    url: str
    logo_url: Optional[str] = None


def site_info_from_html(page_html: str, url: str) -> SiteInfo:
    """Pull the site title and logo out of the root page markup."""
    soup = BeautifulSoup(page_html, "lxml")

    logo = None
    for selector in _LOGO_SELECTORS:
        img = soup.select_one(selector)
        if img is not None and img.get("src"):
            logo = urljoin(url, img["src"])
            break

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string
    if not title.strip():
        h1 = soup.find("h1")
        title = h1.get_text(" ") if h1 else ""
    return SiteInfo(title=" ".join(title.split()) or "Documentation", url=url, logo_url=logo)


_COVER_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>{title}</title>
<style>
  body {{
    font-family: -apple-system, "Segoe UI", Roboto, sans-serif;
    display: flex; flex-direction: column;
    align-items: center; justify-content: center;
    height: 100vh; margin: 0; text-align: center;
  }}
  h1 {{ font-size: 3em; font-weight: 300; margin: 20px 0; }}
  .url {{ font-family: monospace; opacity: 0.7; margin-top: 30px; }}
  img {{ max-width: 300px; max-height: 200px; margin-bottom: 30px; }}
</style>
</head>
<body>
  {logo}
  <h1>{title}</h1>
  <div>Documentation Export</div>
  <div class="url">{url}</div>
</body>
</html>
"""


def build_cover_html(info: SiteInfo) -> str:
    logo = (
        f'<img src="{html.escape(info.logo_url, quote=True)}" alt="Logo">'
        if info.logo_url
        else ""
    )
    return _COVER_TEMPLATE.format(
        title=html.escape(info.title),
        url=html.escape(info.url),
        logo=logo,
    )
