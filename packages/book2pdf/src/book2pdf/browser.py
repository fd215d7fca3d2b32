"""Playwright bootstrap utilities.

One Chromium process per run; every page is loaded in a *fresh* context so
sites cannot leak state between pages. Context creation is serialized, the
rendering itself is not:

    async with ChromiumDriver(max_contexts=4) as driver:
        pdf_bytes = await driver.render("https://docs.example.com/intro", timeout=30)
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Tuple

from fake_headers import Headers                         # builds realistic header sets
from fake_useragent import UserAgent                     # UA rotation
from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from book2pdf.constants import (
    DEFAULT_SCALE,
    DEFAULT_VIEWPORT,
    NAV_SETTLE_MS,
    USER_AGENTS_POOL,
)
from book2pdf.errors import Book2PdfError, RenderError, RenderErrorKind
from book2pdf.logger import log
from book2pdf.utils import sec_ch_headers

# best-effort wait for XHR-driven content after "load" (ms)
_NETWORK_IDLE_MS = 5_000

# --------------------------------------------------------------------------- #
# In-page scripts
# --------------------------------------------------------------------------- #
# Opens collapsed sidebar sections. Several passes because expanding one
# level reveals the toggles of the next.
_EXPAND_NAV_JS = """
async () => {
    const selectors = [
        'a[data-rnwrdesktop-fnigne="true"] > div[tabindex="0"]',
        'button[aria-expanded="false"]',
        'button[data-state="closed"]',
        '[role="button"][aria-expanded="false"]',
        'button.menu__link--sublist',
        '.menu__caret',
        '.theme-doc-sidebar-item-category button[aria-expanded="false"]',
        'nav details:not([open]) > summary',
        'aside details:not([open]) > summary',
    ].join(', ');
    let clicked = 0;
    for (let pass = 0; pass < 3; pass++) {
        const toggles = Array.from(document.querySelectorAll(selectors))
            .filter(el => el.closest('nav, aside, [role="navigation"], .menu, .sidebar'));
        if (!toggles.length) break;
        for (const el of toggles) { el.click(); clicked++; }
        await new Promise(r => setTimeout(r, 300));
    }
    return clicked;
}
"""

# Expands in-content collapsibles and strips interactive chrome that makes no
# sense on paper.
_PREPARE_PAGE_JS = """
() => {
    for (const el of document.querySelectorAll('div[aria-controls^="expandable-body-"]')) {
        el.click();
    }
    for (const el of document.querySelectorAll('details:not([open])')) {
        el.setAttribute('open', '');
    }
    const junk = [
        'header + div[data-rnwrdesktop-hidden="true"]',
        'div[aria-label^="Search"]',
        'div[aria-label="Page actions"]',
    ];
    for (const el of document.querySelectorAll(junk.join(', '))) {
        el.remove();
    }
    const lastModified = document.querySelector('div[dir="auto"] > span[aria-label]');
    if (lastModified) {
        lastModified.innerText = lastModified.getAttribute('aria-label');
    }
}
"""


@dataclass(frozen=True)
class PdfOptions:
    """``page.pdf()`` settings; margins are in inches."""

    scale: float = DEFAULT_SCALE
    margin_top: float = 0.0
    margin_right: float = 0.0
    margin_bottom: float = 0.0
    margin_left: float = 0.0
    paper_format: str = "A4"
    print_background: bool = True

    def as_kwargs(self) -> Dict[str, object]:
        return {
            "format": self.paper_format,
            "scale": self.scale,
            "print_background": self.print_background,
            "margin": {
                "top": f"{self.margin_top}in",
                "right": f"{self.margin_right}in",
                "bottom": f"{self.margin_bottom}in",
                "left": f"{self.margin_left}in",
            },
        }


def _pick_ua() -> str:
    """Generate a plausible UA string, falling back to the static pool."""
    try:
        return UserAgent().random
    except Exception as exc:  # network/cache failure
        log.warning("fake-useragent failed (%s) - using fallback UA", exc)
        return random.choice(USER_AGENTS_POOL)


def build_headers(ua: str) -> Dict[str, str]:
    """Return realistic request headers (minus the UA itself) for *ua*."""
    hdrs = Headers(browser="chrome", os="win", headers=True).generate()
    hdrs.update({
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/avif,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
    })
    hdrs.update(sec_ch_headers(ua))
    # the context's user_agent option is authoritative
    hdrs.pop("User-Agent", None)
    return hdrs


def _timeout_ms(timeout: float) -> float:
    # Playwright treats 0 as "no timeout"
    return max(timeout, 0) * 1000


class ChromiumDriver:
    """Headless Chromium with a bounded number of simultaneous contexts."""

    def __init__(
        self,
        *,
        max_contexts: int = 4,
        viewport: Tuple[int, int] = DEFAULT_VIEWPORT,
        pdf_options: PdfOptions | None = None,
    ):
        self.viewport = viewport
        self.pdf_options = pdf_options or PdfOptions()
        self._slots = asyncio.Semaphore(max(1, max_contexts))
        self._ctx_lock = asyncio.Lock()
        self._pw = None
        self._browser: Browser | None = None
        self._user_agent: str | None = None
        self._headers: Dict[str, str] = {}

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._pw = await async_playwright().start()
        try:
            self._browser = await self._pw.chromium.launch(headless=True)
        except PlaywrightError as exc:
            await self._pw.stop()
            self._pw = None
            raise Book2PdfError(f"cannot launch Chromium: {exc}") from exc
        self._user_agent = _pick_ua()
        self._headers = build_headers(self._user_agent)
        log.debug("Chromium started (UA %s)", self._user_agent)

    async def close(self) -> None:
        if self._browser is not None:
            with contextlib.suppress(PlaywrightError):
                await self._browser.close()
            self._browser = None
        if self._pw is not None:
            await self._pw.stop()
            self._pw = None

    async def __aenter__(self) -> "ChromiumDriver":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @contextlib.asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Acquire a fresh context + page; both are closed on exit."""
        if self._browser is None:
            raise RuntimeError("Driver not started – call await start() first")
        async with self._slots:
            try:
                async with self._ctx_lock:
                    ctx = await self._browser.new_context(
                        viewport={"width": self.viewport[0], "height": self.viewport[1]},
                        user_agent=self._user_agent,
                        extra_http_headers=self._headers,
                    )
            except PlaywrightError as exc:
                raise RenderError(RenderErrorKind.TRANSPORT, f"browser context: {exc}") from exc
            try:
                try:
                    page = await ctx.new_page()
                except PlaywrightError as exc:
                    raise RenderError(RenderErrorKind.TRANSPORT, f"new page: {exc}") from exc
                yield page
            finally:
                with contextlib.suppress(PlaywrightError):
                    await ctx.close()

    # ------------------------------------------------------------------ #
    async def _goto(self, page: Page, url: str, timeout: float) -> None:
        try:
            response = await page.goto(url, wait_until="load", timeout=_timeout_ms(timeout))
        except PlaywrightTimeoutError as exc:
            raise RenderError(RenderErrorKind.TIMEOUT, f"loading {url} timed out") from exc
        except PlaywrightError as exc:
            raise RenderError(RenderErrorKind.TRANSPORT, f"loading {url}: {exc}") from exc

        if response is not None and response.status >= 400:
            kind = (
                RenderErrorKind.TRANSPORT
                if response.status >= 500 or response.status == 429
                else RenderErrorKind.UNRENDERABLE
            )
            raise RenderError(kind, f"{url} answered HTTP {response.status}")

        # sites that keep a socket open never reach "networkidle"
        try:
            await page.wait_for_load_state("networkidle", timeout=_NETWORK_IDLE_MS)
        except PlaywrightTimeoutError:
            pass
        except PlaywrightError as exc:
            raise RenderError(RenderErrorKind.TRANSPORT, f"loading {url}: {exc}") from exc

    async def _export(self, page: Page, what: str) -> bytes:
        try:
            await page.emulate_media(media="print")
            return await page.pdf(**self.pdf_options.as_kwargs())
        except PlaywrightTimeoutError as exc:
            raise RenderError(RenderErrorKind.TIMEOUT, f"PDF export of {what} timed out") from exc
        except PlaywrightError as exc:
            raise RenderError(RenderErrorKind.UNRENDERABLE, f"PDF export of {what}: {exc}") from exc

    async def render(self, url: str, *, timeout: float) -> bytes:
        """Load *url* and export it as PDF bytes; raises :class:`RenderError`."""
        async with self.page() as page:
            await self._goto(page, url, timeout)
            try:
                await page.evaluate(_PREPARE_PAGE_JS)
            except PlaywrightError as exc:
                log.debug("page preparation skipped for %s: %s", url, exc)
            return await self._export(page, url)

    async def render_html(self, html: str, *, timeout: float) -> bytes:
        """Export a locally built document (the cover page)."""
        async with self.page() as page:
            try:
                await page.set_content(html, wait_until="load", timeout=_timeout_ms(timeout))
            except PlaywrightTimeoutError as exc:
                raise RenderError(RenderErrorKind.TIMEOUT, "cover page timed out") from exc
            except PlaywrightError as exc:
                raise RenderError(RenderErrorKind.TRANSPORT, f"cover page: {exc}") from exc
            return await self._export(page, "cover page")

    async def fetch_html(self, url: str, *, timeout: float) -> Tuple[str, str]:
        """
        Return ``(final_url, html)`` for *url* after expanding collapsed
        navigation, so the sidebar markup lists every page.
        """
        async with self.page() as page:
            await self._goto(page, url, timeout)
            try:
                clicked = await page.evaluate(_EXPAND_NAV_JS)
                log.debug("expanded %s navigation toggles on %s", clicked, url)
            except PlaywrightError as exc:
                log.debug("navigation expansion failed on %s: %s", url, exc)
            try:
                await page.wait_for_timeout(NAV_SETTLE_MS)
                return page.url, await page.content()
            except PlaywrightError as exc:
                raise RenderError(RenderErrorKind.TRANSPORT, f"reading {url}: {exc}") from exc
