import pathlib

from book2pdf.errors import RenderErrorKind
from book2pdf.models import (
    Failure,
    NavigationNode,
    PageRef,
    RenderResult,
    RunManifest,
    Success,
)

from conftest import touch_pdf


def test_pageref_key_and_filename():
    page = PageRef("https://docs.example.com/Guide/#x", "The Guide", 3)
    assert page.key == "https://docs.example.com/Guide"
    assert page.filename() == "0003-the-guide.pdf"


def test_navigation_nodes_compare_by_identity():
    a = NavigationNode("Intro", "https://docs.example.com/intro")
    b = NavigationNode("Intro", "https://docs.example.com/intro")
    assert a != b
    child = a.add_child(NavigationNode("Child"))
    assert a.children == [child]


def test_render_result_accessors(tmp_path):
    page = PageRef("https://docs.example.com/a", "A", 1)
    ok = RenderResult(page, Success(tmp_path / "0001-a.pdf"), 1)
    bad = RenderResult(page, Failure(RenderErrorKind.TIMEOUT, "slow"), 3)
    assert ok.ok and ok.path == tmp_path / "0001-a.pdf"
    assert not bad.ok and bad.path is None


def test_manifest_from_directory_orders_by_index(tmp_path):
    for name in ("0010-c.pdf", "0001-a.pdf", "0002-b.pdf"):
        touch_pdf(tmp_path / name)
    (tmp_path / "notes.txt").write_text("not a page")
    (tmp_path / "merged.pdf").write_bytes(b"%PDF")

    manifest = RunManifest.from_directory(tmp_path)
    assert [p.name for p in manifest.paths] == ["0001-a.pdf", "0002-b.pdf", "0010-c.pdf"]
    assert [e.title for e in manifest] == ["a", "b", "c"]
    assert manifest.gaps() == list(range(3, 10))


def test_manifest_index_order_beats_name_order(tmp_path):
    # mixed padding: numeric order differs from lexicographic order
    touch_pdf(tmp_path / "0009-nine.pdf")
    touch_pdf(tmp_path / "00010-ten.pdf")
    manifest = RunManifest.from_directory(tmp_path)
    assert [e.order_index for e in manifest] == [9, 10]


def test_manifest_from_results_skips_failures(tmp_path):
    pages = [PageRef(f"https://docs.example.com/{i}", f"P{i}", i) for i in (1, 2, 3)]
    results = [
        RenderResult(pages[2], Success(tmp_path / "0003-p3.pdf"), 1),
        RenderResult(pages[1], Failure(RenderErrorKind.UNRENDERABLE, "404"), 1),
        RenderResult(pages[0], Success(tmp_path / "0001-p1.pdf"), 2),
    ]
    manifest = RunManifest.from_results(results)
    assert [e.title for e in manifest] == ["P1", "P3"]
    assert manifest.gaps() == [2]


def test_manifest_from_paths_keeps_given_order():
    paths = [pathlib.Path("0002-b.pdf"), pathlib.Path("intro.pdf"), pathlib.Path("0001-a.pdf")]
    manifest = RunManifest.from_paths(paths)
    assert manifest.paths == paths
    assert [e.title for e in manifest] == ["b", "intro", "a"]
    assert manifest.gaps() == []


def test_empty_manifest():
    manifest = RunManifest()
    assert len(manifest) == 0
    assert manifest.gaps() == []
