"""
Concurrent rendering of discovered pages into numbered PDF files.

A fixed set of workers pulls pages off a queue, so no more than
``concurrency_limit`` renders are ever in flight. Every page ends up with
exactly one :class:`~book2pdf.models.RenderResult`, dispatched or not.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import pathlib
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from book2pdf.errors import RenderError, RenderErrorKind
from book2pdf.logger import log
from book2pdf.models import Failure, PageRef, RenderResult, Success
from book2pdf.utils import index_width, parse_page_filename

_PDF_MAGIC = b"%PDF"

ResultCallback = Callable[[RenderResult], None]


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry number *attempt* (1-based): ``base * 2**(n-1)``, capped."""
    return min(base * (2 ** (attempt - 1)), cap)


def write_atomic(path: pathlib.Path, data: bytes) -> pathlib.Path:
    """
    Write via a ``.part`` sibling and rename, so *path* is either absent or
    complete. Filesystem errors surface as an unrenderable page.
    """
    tmp = path.with_name(path.name + ".part")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise RenderError(RenderErrorKind.UNRENDERABLE, f"cannot write {path}: {exc}") from exc
    return path


def prune_stale_pages(pages_dir: pathlib.Path, keep: Iterable[str]) -> List[pathlib.Path]:
    """
    Remove page files (and ``.part`` leftovers) whose names are not in *keep*,
    so an earlier run with a different page list cannot leak into the merge.
    """
    if not pages_dir.is_dir():
        return []
    keep = set(keep)
    removed = []
    for child in pages_dir.iterdir():
        if not child.is_file() or child.name in keep:
            continue
        if child.name.endswith(".part") or parse_page_filename(child.name) is not None:
            child.unlink()
            removed.append(child)
    if removed:
        log.info("Removed %d stale file(s) from %s", len(removed), pages_dir)
    return removed


async def _pause(delay: float, stop_event: asyncio.Event | None) -> None:
    if stop_event is None:
        await asyncio.sleep(delay)
        return
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(stop_event.wait(), delay)


async def render_one(
    page: PageRef,
    out_dir: pathlib.Path,
    *,
    driver,
    timeout: float,
    max_retries: int,
    backoff_base: float,
    backoff_max: float,
    width: int,
    stop_event: asyncio.Event | None = None,
) -> RenderResult:
    """Render *page* with up to ``max_retries`` retries of transient failures."""
    target = out_dir / page.filename(width)
    attempt = 0
    while True:
        attempt += 1
        try:
            data = await asyncio.wait_for(
                driver.render(page.url, timeout=timeout), timeout or None
            )
            if not data or bytes(data[:4]) != _PDF_MAGIC:
                raise RenderError(RenderErrorKind.UNRENDERABLE, "browser returned no PDF data")
            write_atomic(target, bytes(data))
            log.debug("wrote %s (attempt %d)", target.name, attempt)
            return RenderResult(page, Success(target), attempt)
        except asyncio.TimeoutError:
            err = RenderError(RenderErrorKind.TIMEOUT, f"no PDF within {timeout:g}s")
        except RenderError as exc:
            err = exc
        except Exception as exc:  # unexpected driver failure
            err = RenderError(RenderErrorKind.TRANSPORT, f"{type(exc).__name__}: {exc}")

        stopping = stop_event is not None and stop_event.is_set()
        if not err.retryable or attempt > max_retries or stopping:
            log.warning("failed %s - %s (after %d attempt(s))", page.url, err, attempt)
            return RenderResult(page, Failure(err.kind, err.message), attempt)

        delay = backoff_delay(attempt, backoff_base, backoff_max)
        log.info("retrying %s in %.1fs (%s)", page.url, delay, err)
        await _pause(delay, stop_event)
        if stop_event is not None and stop_event.is_set():
            log.warning("gave up on %s - run stopped during backoff", page.url)
            return RenderResult(page, Failure(err.kind, err.message), attempt)


async def render_all(
    pages: Sequence[PageRef],
    out_dir: pathlib.Path,
    *,
    driver,
    concurrency_limit: int = 4,
    timeout: float = 30.0,
    max_retries: int = 2,
    backoff_base: float = 1.0,
    backoff_max: float = 30.0,
    stop_event: asyncio.Event | None = None,
    on_result: Optional[ResultCallback] = None,
    width: int | None = None,
) -> List[RenderResult]:
    """
    Render every page to ``out_dir/<index>-<slug>.pdf``.

    Returns one result per input page, ordered by ``order_index``. Pages never
    started because *stop_event* was set come back as ``CANCELLED``
    failures with zero attempts.
    """
    if concurrency_limit < 1:
        raise ValueError("concurrency_limit must be >= 1")
    if not pages:
        return []

    out_dir.mkdir(parents=True, exist_ok=True)
    if width is None:
        width = index_width(max(p.order_index for p in pages))

    queue: asyncio.Queue[PageRef] = asyncio.Queue()
    for page in pages:
        queue.put_nowait(page)
    results: Dict[int, RenderResult] = {}

    async def worker() -> None:
        while not (stop_event is not None and stop_event.is_set()):
            try:
                page = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            result = await render_one(
                page,
                out_dir,
                driver=driver,
                timeout=timeout,
                max_retries=max_retries,
                backoff_base=backoff_base,
                backoff_max=backoff_max,
                width=width,
                stop_event=stop_event,
            )
            results[page.order_index] = result
            if on_result is not None:
                on_result(result)

    workers = min(concurrency_limit, len(pages))
    log.info("Rendering %d pages with %d worker(s)", len(pages), workers)
    await asyncio.gather(*(worker() for _ in range(workers)))

    for page in pages:
        if page.order_index not in results:
            cancelled = RenderResult(
                page, Failure(RenderErrorKind.CANCELLED, "run stopped before dispatch"), 0
            )
            results[page.order_index] = cancelled
            if on_result is not None:
                on_result(cancelled)

    return [results[i] for i in sorted(results)]
