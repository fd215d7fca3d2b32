"""
Combining page files into one document.

The merge order comes from the file names (``0001-…``, ``0002-…``) or from
the manifest of the run that produced them, never from the directory listing.
"""

from __future__ import annotations

import contextlib
import io
import os
import pathlib
from dataclasses import dataclass, field
from typing import Iterable, List, Protocol, Sequence, Union

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from book2pdf.errors import MergeError
from book2pdf.logger import log
from book2pdf.models import ManifestEntry, RunManifest


class MergeEngine(Protocol):
    def merge(self, documents: Sequence[bytes], titles: Sequence[str]) -> bytes:
        """Concatenate *documents* in order; raise :class:`MergeError`."""


class PypdfMergeEngine:
    """pypdf-backed engine; adds one bookmark per input document."""

    def __init__(self, *, bookmarks: bool = True):
        self.bookmarks = bookmarks

    @staticmethod
    def _read(data: bytes, title: str) -> PdfReader:
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted:
                raise MergeError(f"{title!r} is encrypted")
            if len(reader.pages) == 0:
                raise MergeError(f"{title!r} has no pages")
        except (PdfReadError, ValueError, KeyError) as exc:
            raise MergeError(f"{title!r} is not a valid PDF: {exc}") from exc
        return reader

    def merge(self, documents: Sequence[bytes], titles: Sequence[str]) -> bytes:
        if not documents:
            raise MergeError("nothing to merge")
        writer = PdfWriter()
        for data, title in zip(documents, titles):
            reader = self._read(data, title)
            first_page = len(writer.pages)
            for page in reader.pages:
                writer.add_page(page)
            if self.bookmarks:
                writer.add_outline_item(title, first_page)
        buf = io.BytesIO()
        writer.write(buf)
        return buf.getvalue()


@dataclass
class MergeReport:
    output: pathlib.Path
    entries: List[ManifestEntry] = field(default_factory=list)
    gaps: List[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)


def merge_pages(
    source: Union[RunManifest, pathlib.Path, str, Sequence[pathlib.Path]],
    output_path: Union[pathlib.Path, str],
    *,
    engine: MergeEngine | None = None,
) -> MergeReport:
    """
    Merge the page files described by *source* into *output_path*. *source*
    is a manifest, a directory scanned for ``<index>-<slug>.pdf`` names, or an
    explicit list of files taken in the given order.

    Missing indices are tolerated and reported in :attr:`MergeReport.gaps`.
    """
    output_path = pathlib.Path(output_path)
    if isinstance(source, RunManifest):
        manifest = source
    elif isinstance(source, (list, tuple)):
        manifest = RunManifest.from_paths([pathlib.Path(p) for p in source])
    else:
        directory = pathlib.Path(source)
        if not directory.is_dir():
            raise MergeError(f"{directory} is not a directory")
        manifest = RunManifest(
            e for e in RunManifest.from_directory(directory)
            if e.path.resolve() != output_path.resolve()
        )

    entries = list(manifest)
    if not entries:
        raise MergeError("no page files to merge")

    gaps = manifest.gaps()
    if gaps:
        log.warning("Merging with %d missing page(s): %s", len(gaps), gaps)

    documents = []
    for entry in entries:
        try:
            documents.append(entry.path.read_bytes())
        except OSError as exc:
            raise MergeError(f"cannot read {entry.path}: {exc}") from exc

    engine = engine or PypdfMergeEngine()
    merged = engine.merge(documents, [e.title for e in entries])

    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = output_path.with_name(output_path.name + ".part")
    try:
        tmp.write_bytes(merged)
        os.replace(tmp, output_path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise MergeError(f"cannot write {output_path}: {exc}") from exc

    log.info("Merged %d file(s) into %s", len(entries), output_path)
    return MergeReport(output=output_path, entries=entries, gaps=gaps)


def cleanup_pages(entries: Iterable[ManifestEntry], pages_dir: pathlib.Path | None = None) -> int:
    """Delete merged page files; drop *pages_dir* too once it is empty."""
    removed = 0
    for entry in entries:
        with contextlib.suppress(FileNotFoundError):
            entry.path.unlink()
            removed += 1
    if pages_dir is not None and pages_dir.is_dir() and not any(pages_dir.iterdir()):
        pages_dir.rmdir()
        log.debug("removed empty %s", pages_dir)
    return removed
