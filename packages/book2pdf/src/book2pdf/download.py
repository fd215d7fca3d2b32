"""
The ``download`` pipeline: discover → render → merge → clean up.

Kept free of Typer so it can be driven from Python (and from tests with a
fake driver):

    summary = asyncio.run(run_download(DownloadConfig("https://docs.example.com")))
"""

from __future__ import annotations

import asyncio
import contextlib
import pathlib
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from book2pdf.browser import ChromiumDriver, PdfOptions
from book2pdf.constants import (
    COVER_INDEX,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_CONCURRENCY,
    DEFAULT_OUTDIR,
    DEFAULT_RETRIES,
    DEFAULT_SCALE,
    DEFAULT_TIMEOUT,
    PAGES_DIRNAME,
)
from book2pdf.cover import build_cover_html, site_info_from_html
from book2pdf.errors import NoPagesRendered, RenderError
from book2pdf.logger import log
from book2pdf.merger import MergeReport, cleanup_pages, merge_pages
from book2pdf.models import Failure, PageRef, RenderResult, RunManifest, Success
from book2pdf.navigation import BrowserPageSource, HttpPageSource, NavigationDiscoverer, PageSource
from book2pdf.renderer import ResultCallback, prune_stale_pages, render_all, write_atomic
from book2pdf.utils import extract_url, host_slug, index_width


@dataclass
class DownloadConfig:
    url: str
    out_dir: pathlib.Path = pathlib.Path(DEFAULT_OUTDIR)
    combine: bool = True
    preserve_pages: bool = False
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    retries: int = DEFAULT_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_max: float = DEFAULT_BACKOFF_MAX
    output_name: Optional[str] = None
    fast_http: bool = False
    cover: bool = False
    scale: float = DEFAULT_SCALE
    run_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        self.url = extract_url(self.url)
        self.out_dir = pathlib.Path(self.out_dir)

    def validate(self) -> None:
        if self.timeout < 0:
            raise ValueError("timeout must be >= 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        # Chromium's accepted print scale range
        if not 0.1 <= self.scale <= 2.0:
            raise ValueError("scale must be between 0.1 and 2.0")
        if self.run_timeout is not None and self.run_timeout <= 0:
            raise ValueError("run timeout must be > 0")

    @property
    def pages_dir(self) -> pathlib.Path:
        return self.out_dir / PAGES_DIRNAME

    @property
    def combined_path(self) -> pathlib.Path:
        return self.out_dir / (self.output_name or f"{host_slug(self.url)}-combined.pdf")


@dataclass
class RunSummary:
    pages: Tuple[PageRef, ...]
    results: List[RenderResult]
    cover: Optional[RenderResult] = None
    merge: Optional[MergeReport] = None
    interrupted: bool = False
    removed: int = 0

    @property
    def succeeded(self) -> List[RenderResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[RenderResult]:
        return [r for r in self.results if not r.ok]

    @property
    def combined(self) -> Optional[pathlib.Path]:
        return self.merge.output if self.merge else None


async def _render_cover(
    discoverer: NavigationDiscoverer, config: DownloadConfig, driver, width: int
) -> Optional[RenderResult]:
    if not discoverer.root_html:
        return None
    info = site_info_from_html(discoverer.root_html, discoverer.root_url or config.url)
    page = PageRef(url=info.url, title="cover", order_index=COVER_INDEX)
    try:
        data = await driver.render_html(build_cover_html(info), timeout=config.timeout)
        path = write_atomic(config.pages_dir / page.filename(width), data)
    except RenderError as exc:
        log.warning("Cover page skipped: %s", exc)
        return RenderResult(page, Failure(exc.kind, exc.message), 1)
    return RenderResult(page, Success(path), 1)


async def run_download(
    config: DownloadConfig,
    *,
    driver=None,
    source: PageSource | None = None,
    stop_event: asyncio.Event | None = None,
    on_pages: Optional[Callable[[Sequence[PageRef]], None]] = None,
    on_result: Optional[ResultCallback] = None,
) -> RunSummary:
    """
    Run the whole pipeline for *config*.

    Raises :class:`~book2pdf.errors.DiscoveryError` when no page list can be
    built, :class:`~book2pdf.errors.NoPagesRendered` when every page failed
    and :class:`~book2pdf.errors.MergeError` when combining fails. Partial
    failures are reported in the returned summary.
    """
    config.validate()
    if stop_event is None:
        stop_event = asyncio.Event()

    async with contextlib.AsyncExitStack() as stack:
        if config.run_timeout:
            timer = asyncio.get_running_loop().call_later(config.run_timeout, stop_event.set)
            stack.callback(timer.cancel)
        if driver is None:
            driver = ChromiumDriver(
                max_contexts=config.concurrency,
                pdf_options=PdfOptions(scale=config.scale),
            )
            await stack.enter_async_context(driver)
        if source is None:
            source = (
                HttpPageSource(timeout=config.timeout)
                if config.fast_http
                else BrowserPageSource(driver, timeout=config.timeout)
            )

        discoverer = NavigationDiscoverer(source)
        pages = await discoverer.discover(config.url)
        if on_pages is not None:
            on_pages(pages)

        width = index_width(len(pages))
        keep = {p.filename(width) for p in pages}
        if config.cover:
            keep.add(PageRef(config.url, "cover", COVER_INDEX).filename(width))
        prune_stale_pages(config.pages_dir, keep)
        config.pages_dir.mkdir(parents=True, exist_ok=True)

        cover = await _render_cover(discoverer, config, driver, width) if config.cover else None

        results = await render_all(
            pages,
            config.pages_dir,
            driver=driver,
            concurrency_limit=config.concurrency,
            timeout=config.timeout,
            max_retries=config.retries,
            backoff_base=config.backoff_base,
            backoff_max=config.backoff_max,
            stop_event=stop_event,
            on_result=on_result,
            width=width,
        )

    summary = RunSummary(
        pages=pages, results=results, cover=cover, interrupted=stop_event.is_set()
    )
    if not summary.succeeded:
        raise NoPagesRendered(f"none of the {len(pages)} pages could be rendered")

    for r in summary.failed:
        log.warning("Missing %s (%s): %s", r.page.title, r.page.url, r.outcome.message)

    if not config.combine:
        return summary

    rendered = [r for r in (cover, *results) if r is not None]
    summary.merge = merge_pages(RunManifest.from_results(rendered), config.combined_path)
    if not config.preserve_pages:
        summary.removed = cleanup_pages(summary.merge.entries, config.pages_dir)
    return summary
