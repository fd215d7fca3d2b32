"""
Shared fixtures & fakes. Nothing here launches a browser.
"""
import asyncio
import io
import pathlib
from collections import Counter

import pytest
from pypdf import PdfReader, PdfWriter

from book2pdf.errors import DiscoveryError

BASE = "https://docs.example.com"


@pytest.fixture(autouse=True)
def tmp_cwd(tmp_path, monkeypatch):
    """Run each test in an isolated tmp dir."""
    monkeypatch.chdir(tmp_path)
    yield


def make_pdf(width: float = 200, pages: int = 1) -> bytes:
    """A tiny valid PDF; *width* makes its pages recognisable after a merge."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=300)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def page_widths(path: pathlib.Path) -> list[int]:
    return [int(float(p.mediabox.width)) for p in PdfReader(str(path)).pages]


def touch_pdf(path: pathlib.Path, width: float = 200) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_pdf(width))
    return path


class FakeDriver:
    """
    Stands in for ChromiumDriver.  ``failures[url]`` is a list of exceptions
    raised on successive attempts (or a single exception raised every time);
    ``widths[url]`` tags the produced PDF.
    """

    def __init__(self, *, failures=None, delays=None, widths=None, payload=None):
        self.failures = failures or {}
        self.delays = delays or {}
        self.widths = widths or {}
        self.payload = payload
        self.calls = Counter()
        self.active = 0
        self.max_active = 0
        self.covers = 0

    async def render(self, url, *, timeout):
        self.calls[url] += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(url, 0))
            planned = self.failures.get(url)
            if isinstance(planned, list):
                if planned:
                    raise planned.pop(0)
            elif planned is not None:
                raise planned
            if self.payload is not None:
                return self.payload
            return make_pdf(self.widths.get(url, 200))
        finally:
            self.active -= 1

    async def render_html(self, html, *, timeout):
        self.covers += 1
        return make_pdf(50)


class FakeSource:
    """PageSource serving canned HTML keyed by URL."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.fetched = []

    async def fetch(self, url):
        self.fetched.append(url)
        if url not in self.pages:
            raise DiscoveryError(f"cannot load {url}: 404")
        return url, self.pages[url]


def sidebar_html(links, *, title="Example Docs") -> str:
    """Docusaurus-flavoured page whose sidebar lists *links* ``(label, href)``."""
    items = "\n".join(
        f'<li class="menu__list-item"><a class="menu__link" href="{href}">{label}</a></li>'
        for label, href in links
    )
    return f"""
    <html><head><title>{title}</title></head>
    <body><div id="__docusaurus">
      <nav class="navbar"><a href="/">Home</a></nav>
      <aside><nav class="menu"><ul class="theme-doc-sidebar-menu menu__list">
      {items}
      </ul></nav></aside>
      <main><h1>{title}</h1></main>
    </div></body></html>
    """


@pytest.fixture
def fake_driver():
    return FakeDriver()
