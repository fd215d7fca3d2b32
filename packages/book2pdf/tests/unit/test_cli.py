import pathlib

import pytest
import typer
from typer.testing import CliRunner

from book2pdf import __version__, download
from book2pdf.cli import app, merge
from book2pdf.errors import MergeError, NoPagesRendered, RenderError, RenderErrorKind

from conftest import BASE, FakeDriver, FakeSource, page_widths, sidebar_html, touch_pdf

runner = CliRunner()

LINKS = [("Intro", "/docs/intro"), ("Guide", "/docs/guide")]


def _use_fakes(monkeypatch, driver=None, source=None):
    driver = driver or FakeDriver()
    source = source or FakeSource({BASE + "/": sidebar_html(LINKS)})

    async def fake_run_download(config, **kw):
        config.backoff_base = config.backoff_max = 0
        return await download.run_download(config, driver=driver, source=source, **kw)

    monkeypatch.setattr("book2pdf.cli.run_download", fake_run_download)
    return driver


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_download_success(monkeypatch):
    _use_fakes(monkeypatch)
    result = runner.invoke(app, ["download", BASE + "/"])
    assert result.exit_code == 0, result.output
    assert "Rendered 2/2 pages" in result.output
    assert pathlib.Path("output_book2pdf/docs-example-com-combined.pdf").exists()
    assert not pathlib.Path("output_book2pdf/pages").exists()


def test_download_custom_outdir_and_output(monkeypatch):
    _use_fakes(monkeypatch)
    result = runner.invoke(
        app, ["download", BASE + "/", "--outDir", "book", "--output", "acme.pdf", "-p"]
    )
    assert result.exit_code == 0, result.output
    assert pathlib.Path("book/acme.pdf").exists()
    assert sorted(p.name for p in pathlib.Path("book/pages").iterdir()) == [
        "0001-intro.pdf",
        "0002-guide.pdf",
    ]


def test_no_combine_with_partial_failure_exits_zero(monkeypatch):
    driver = FakeDriver(failures={BASE + "/docs/guide": RenderError(RenderErrorKind.UNRENDERABLE, "HTTP 404")})
    _use_fakes(monkeypatch, driver=driver)
    result = runner.invoke(app, ["download", BASE + "/", "--no-combine"])
    assert result.exit_code == 0, result.output
    assert "Guide" in result.output
    assert "Rendered 1/2 pages" in result.output
    assert [p.name for p in pathlib.Path("output_book2pdf/pages").iterdir()] == ["0001-intro.pdf"]


def test_all_pages_failing_exits_2(monkeypatch):
    driver = FakeDriver(failures={
        BASE + href: RenderError(RenderErrorKind.UNRENDERABLE, "nope") for _, href in LINKS
    })
    _use_fakes(monkeypatch, driver=driver)
    result = runner.invoke(app, ["download", BASE + "/", "--retries", "0"])
    assert result.exit_code == 2


def test_discovery_failure_exits_1(monkeypatch):
    _use_fakes(monkeypatch, source=FakeSource({}))
    result = runner.invoke(app, ["download", BASE + "/"])
    assert result.exit_code == 1
    assert "Discovery failed" in result.output


def test_invalid_url_exits_1(monkeypatch):
    _use_fakes(monkeypatch)
    result = runner.invoke(app, ["download", "ftp://docs.example.com"])
    assert result.exit_code == 1


def test_negative_timeout_is_rejected(monkeypatch):
    _use_fakes(monkeypatch)
    result = runner.invoke(app, ["download", BASE + "/", "--timeout", "-1"])
    assert result.exit_code == 1
    assert "timeout" in result.output


def test_merge_failure_exits_3(monkeypatch):
    async def failing(config, **kw):
        raise MergeError("'b' is not a valid PDF")

    monkeypatch.setattr("book2pdf.cli.run_download", failing)
    result = runner.invoke(app, ["download", BASE + "/"])
    assert result.exit_code == 3


def test_interrupt_before_any_page_exits_130(monkeypatch):
    async def interrupted(config, *, stop_event, **kw):
        stop_event.set()
        raise NoPagesRendered("none of the 2 pages could be rendered")

    monkeypatch.setattr("book2pdf.cli.run_download", interrupted)
    result = runner.invoke(app, ["download", BASE + "/"])
    assert result.exit_code == 130


def test_merge_command_orders_by_index():
    pages = pathlib.Path("output_book2pdf/pages")
    touch_pdf(pages / "0010-c.pdf", width=130)
    touch_pdf(pages / "0001-a.pdf", width=110)
    touch_pdf(pages / "0002-b.pdf", width=120)

    result = runner.invoke(app, ["merge"])
    assert result.exit_code == 0, result.output
    assert page_widths(pathlib.Path("merged.pdf")) == [110, 120, 130]
    assert "Missing page indices" in result.output
    # standalone merge never deletes its inputs
    assert len(list(pages.iterdir())) == 3


def test_merge_command_custom_paths():
    touch_pdf(pathlib.Path("in/0001-a.pdf"))
    result = runner.invoke(app, ["merge", "-d", "in", "-o", "out/book.pdf"])
    assert result.exit_code == 0, result.output
    assert pathlib.Path("out/book.pdf").exists()


def test_merge_command_empty_dir_exits_3():
    pathlib.Path("empty").mkdir()
    result = runner.invoke(app, ["merge", "--dir", "empty"])
    assert result.exit_code == 3
    assert not pathlib.Path("merged.pdf").exists()


def test_merge_callable_directly():
    """The CLI layer raises ``typer.Exit`` rather than ``SystemExit``."""
    with pytest.raises(typer.Exit) as exc_info:
        merge(pathlib.Path("does_not_exist"))
    assert exc_info.value.exit_code == 3
