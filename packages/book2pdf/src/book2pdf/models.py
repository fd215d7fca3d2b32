"""
Plain data carried between the pipeline stages.

``NavigationNode`` is the only mutable type: the discoverer appends children
while reading the sidebar markup and throws the tree away once it has been
flattened into an immutable tuple of ``PageRef``.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Union

from book2pdf.constants import INDEX_WIDTH
from book2pdf.errors import RenderErrorKind
from book2pdf.utils import normalize_url, page_filename, parse_page_filename


@dataclass(frozen=True)
class PageRef:
    url: str
    title: str
    order_index: int
    depth: int = 0

    @property
    def key(self) -> str:
        """Normalized URL - the uniqueness key within a run."""
        return normalize_url(self.url)

    def filename(self, width: int = INDEX_WIDTH) -> str:
        return page_filename(self.order_index, self.title, width)


@dataclass(eq=False)
class NavigationNode:
    label: str
    url: Optional[str] = None
    children: List["NavigationNode"] = field(default_factory=list)

    def add_child(self, child: "NavigationNode") -> "NavigationNode":
        self.children.append(child)
        return child


@dataclass(frozen=True)
class Success:
    path: pathlib.Path


@dataclass(frozen=True)
class Failure:
    kind: RenderErrorKind
    message: str


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class RenderResult:
    page: PageRef
    outcome: Outcome
    attempts: int

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)

    @property
    def path(self) -> Optional[pathlib.Path]:
        return self.outcome.path if isinstance(self.outcome, Success) else None


@dataclass(frozen=True)
class ManifestEntry:
    order_index: int
    title: str
    path: pathlib.Path


class RunManifest:
    """
    Ordered record of the page files that make up a book.

    During ``download`` it is built from the render results; for a standalone
    ``merge`` it is rebuilt from file names alone, which is why the index
    prefix of every page file is load-bearing.
    """

    def __init__(self, entries: Iterable[ManifestEntry] = ()):
        self._entries = sorted(entries, key=lambda e: (e.order_index, e.path.name))

    @classmethod
    def from_results(cls, results: Iterable[RenderResult]) -> "RunManifest":
        return cls(
            ManifestEntry(r.page.order_index, r.page.title, r.path)
            for r in results
            if r.path is not None
        )

    @classmethod
    def from_directory(cls, directory: pathlib.Path) -> "RunManifest":
        entries = []
        for child in directory.iterdir():
            parsed = parse_page_filename(child.name)
            if parsed is None or not child.is_file():
                continue
            index, slug = parsed
            entries.append(ManifestEntry(index, slug.replace("-", " "), child))
        return cls(entries)

    @classmethod
    def from_paths(cls, paths: Sequence[pathlib.Path]) -> "RunManifest":
        """Explicit file list: the given order *is* the document order."""
        manifest = cls()
        for pos, p in enumerate(paths):
            p = pathlib.Path(p)
            parsed = parse_page_filename(p.name)
            title = parsed[1].replace("-", " ") if parsed else p.stem
            manifest._entries.append(ManifestEntry(pos, title, p))
        return manifest

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def paths(self) -> list[pathlib.Path]:
        return [e.path for e in self._entries]

    def gaps(self) -> list[int]:
        """Indices missing between the first and last entry."""
        present = {e.order_index for e in self._entries}
        if not present:
            return []
        return [i for i in range(min(present), max(present) + 1) if i not in present]
