"""
CLI entry-point.  Run ``book2pdf --help``.
"""

from __future__ import annotations

import asyncio
import contextlib
import pathlib
import signal
from typing import Any, Optional, Sequence

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from typer import Argument as Arg
from typer import Exit, colors, secho
from typer import Option as Opt
from typer.models import ArgumentInfo, OptionInfo

from book2pdf import __version__
from book2pdf.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MERGE_DIR,
    DEFAULT_MERGE_OUTPUT,
    DEFAULT_OUTDIR,
    DEFAULT_RETRIES,
    DEFAULT_SCALE,
    DEFAULT_TIMEOUT,
)
from book2pdf.download import DownloadConfig, RunSummary, run_download
from book2pdf.errors import Book2PdfError, DiscoveryError, MergeError, NoPagesRendered
from book2pdf.logger import configure_logging, log
from book2pdf.merger import merge_pages
from book2pdf.models import PageRef, RenderResult

EXIT_DISCOVERY = 1
EXIT_NO_PAGES = 2
EXIT_MERGE = 3
EXIT_INTERRUPTED = 130

app = typer.Typer(
    add_completion=False,
    help="Turn a documentation website into one PDF: every page of its navigation, in order.",
    no_args_is_help=True,
)


# --------------------------------------------------------------------------- #
# Helper - unwrap Typer's sentinel objects when functions are invoked
# **directly** from Python (e.g. unit-tests) instead of through the CLI
# parser.
# --------------------------------------------------------------------------- #
def _unwrap(value: Any) -> Any:                       # pragma: no cover
    if isinstance(value, (OptionInfo, ArgumentInfo)):
        return value.default
    return value


def _fail(message: str, code: int) -> Exit:
    secho(f"❌  {message}", fg=colors.RED, err=True)
    return Exit(code)


def _print_version(value: Optional[bool]) -> None:
    if value:
        typer.echo(f"book2pdf {__version__}")
        raise Exit()


@app.callback()
def main(
    verbose: int = Opt(0, "--verbose", "-v", count=True, help="-v for progress details, -vv for debug output."),
    version: Optional[bool] = Opt(
        None,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    configure_logging(_unwrap(verbose))


# --------------------------------------------------------------------------- #
# download
# --------------------------------------------------------------------------- #
class _DownloadRun:
    """One ``download`` invocation: progress bar plus SIGINT → stop event."""

    def __init__(self, config: DownloadConfig, console: Console):
        self.config = config
        self.stop_event: asyncio.Event | None = None
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._task = None

    def _on_pages(self, pages: Sequence[PageRef]) -> None:
        self._task = self.progress.add_task("Rendering", total=len(pages))

    def _on_result(self, result: RenderResult) -> None:
        if self._task is not None:
            self.progress.advance(self._task)

    def _interrupt(self) -> None:
        log.warning("Interrupted - waiting for in-flight pages")
        self.stop_event.set()

    async def _run(self) -> RunSummary:
        self.stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, self._interrupt)
        try:
            return await run_download(
                self.config,
                stop_event=self.stop_event,
                on_pages=self._on_pages,
                on_result=self._on_result,
            )
        finally:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGINT)

    @property
    def interrupted(self) -> bool:
        return self.stop_event is not None and self.stop_event.is_set()

    def __call__(self) -> RunSummary:
        with self.progress:
            return asyncio.run(self._run())


def _failure_table(failed: Sequence[RenderResult]) -> Table:
    table = Table(title="Pages missing from the output", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("URL", overflow="fold")
    table.add_column("Reason")
    for r in failed:
        table.add_row(
            str(r.page.order_index),
            r.page.title,
            r.page.url,
            f"{r.outcome.kind.value}: {r.outcome.message}",
        )
    return table


@app.command()
def download(
    url: str = Arg(..., help="Root URL of the documentation site (or a Markdown link to it)."),
    out_dir: pathlib.Path = Opt(
        pathlib.Path(DEFAULT_OUTDIR), "--outDir", "-o", help="Directory for page files and the combined PDF."
    ),
    combine: bool = Opt(True, "--combine/--no-combine", help="Merge the pages into one PDF."),
    preserve_pages: bool = Opt(False, "--preserve-pages", "-p", help="Keep the per-page PDFs after merging."),
    timeout: float = Opt(DEFAULT_TIMEOUT, "--timeout", "-t", help="Seconds per page attempt (0 = no limit)."),
    concurrency: int = Opt(DEFAULT_CONCURRENCY, "--concurrency", "-j", help="Pages rendered at the same time."),
    retries: int = Opt(DEFAULT_RETRIES, "--retries", help="Retries for timeouts and network errors."),
    output: Optional[str] = Opt(
        None, "--output", help="Combined file name inside --outDir [default: <host>-combined.pdf]."
    ),
    fast_http: bool = Opt(False, "--fast-http", help="Read the navigation with plain HTTP instead of a browser."),
    cover: bool = Opt(False, "--cover", help="Prepend a title page."),
    scale: float = Opt(DEFAULT_SCALE, "--scale", help="Print scale passed to Chromium (0.1-2.0)."),
    run_timeout: Optional[float] = Opt(
        None, "--run-timeout", help="Stop dispatching pages after this many seconds."
    ),
) -> None:
    """Discover, render and (by default) merge every page of a docs site."""
    config = DownloadConfig(
        url=_unwrap(url),
        out_dir=pathlib.Path(_unwrap(out_dir)),
        combine=_unwrap(combine),
        preserve_pages=_unwrap(preserve_pages),
        timeout=_unwrap(timeout),
        concurrency=_unwrap(concurrency),
        retries=_unwrap(retries),
        output_name=_unwrap(output),
        fast_http=_unwrap(fast_http),
        cover=_unwrap(cover),
        scale=_unwrap(scale),
        run_timeout=_unwrap(run_timeout),
    )
    try:
        config.validate()
    except ValueError as exc:
        raise _fail(str(exc), EXIT_DISCOVERY)

    console = Console(stderr=True)
    run = _DownloadRun(config, console)
    try:
        summary = run()
    except DiscoveryError as exc:
        raise _fail(f"Discovery failed: {exc}", EXIT_DISCOVERY)
    except NoPagesRendered as exc:
        if run.interrupted:
            raise _fail("Interrupted before any page was rendered", EXIT_INTERRUPTED)
        raise _fail(str(exc), EXIT_NO_PAGES)
    except MergeError as exc:
        raise _fail(f"Merge failed: {exc}", EXIT_MERGE)
    except Book2PdfError as exc:
        raise _fail(str(exc), EXIT_DISCOVERY)
    except KeyboardInterrupt:
        raise _fail("Aborted by user", EXIT_INTERRUPTED)

    if summary.failed:
        Console().print(_failure_table(summary.failed))
    typer.echo(f"Rendered {len(summary.succeeded)}/{len(summary.pages)} pages")
    if summary.combined is not None:
        typer.echo(f"✅  Saved {summary.combined}")
    else:
        typer.echo(f"✅  Pages in {config.pages_dir}")


# --------------------------------------------------------------------------- #
# merge
# --------------------------------------------------------------------------- #
@app.command()
def merge(
    directory: pathlib.Path = Opt(
        pathlib.Path(DEFAULT_MERGE_DIR), "--dir", "-d", help="Directory holding NNNN-title.pdf files."
    ),
    output: pathlib.Path = Opt(pathlib.Path(DEFAULT_MERGE_OUTPUT), "--output", "-o", help="Merged PDF path."),
) -> None:
    """Merge existing page files in index order (files are left in place)."""
    try:
        report = merge_pages(pathlib.Path(_unwrap(directory)), pathlib.Path(_unwrap(output)))
    except MergeError as exc:
        raise _fail(f"Merge failed: {exc}", EXIT_MERGE)

    if report.gaps:
        secho(
            f"⚠  Missing page indices: {', '.join(map(str, report.gaps))}",
            fg=colors.YELLOW,
            err=True,
        )
    typer.echo(f"✅  Merged {report.count} files into {report.output}")


if __name__ == "__main__":                            # pragma: no cover
    app()
