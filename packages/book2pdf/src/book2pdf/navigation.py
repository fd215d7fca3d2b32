"""
Navigation discovery: the sidebar of a documentation site becomes an
ordered, de-duplicated tuple of :class:`~book2pdf.models.PageRef`.

Documentation generators disagree on what "the sidebar" is, so extraction is
a list of :class:`NavigationStrategy` objects tried in order; the first one
that recognises the site *and* yields at least one page wins. Pass your own
list to :class:`NavigationDiscoverer` to support another generator.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import unquote, urlsplit

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from book2pdf.constants import FIRST_PAGE_INDEX
from book2pdf.errors import DiscoveryError, InvalidURL, RenderError
from book2pdf.logger import log
from book2pdf.models import NavigationNode, PageRef
from book2pdf.utils import is_http_url, normalize_url, resolve_href

_LISTS = ["ul", "ol"]


# --------------------------------------------------------------------------- #
# Page sources
# --------------------------------------------------------------------------- #
class PageSource(Protocol):
    async def fetch(self, url: str) -> Tuple[str, str]:
        """Return ``(final_url, html)``; raise :class:`DiscoveryError`."""


class BrowserPageSource:
    """Live DOM via Playwright, with collapsed sidebar sections opened."""

    def __init__(self, driver, *, timeout: float):
        self.driver = driver
        self.timeout = timeout

    async def fetch(self, url: str) -> Tuple[str, str]:
        try:
            return await self.driver.fetch_html(url, timeout=self.timeout)
        except RenderError as exc:
            raise DiscoveryError(f"cannot load {url}: {exc.message}") from exc


class HttpPageSource:
    """
    Plain HTTP GET - faster, but sees only server-rendered markup, so it suits
    static generators (MkDocs, Sphinx) better than client-side ones.
    """

    def __init__(self, *, timeout: float, session: requests.Session | None = None):
        self.timeout = timeout or None
        self.session = session or requests.Session()

    def _get(self, url: str) -> Tuple[str, str]:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DiscoveryError(f"cannot load {url}: {exc}") from exc
        return resp.url, resp.text

    async def fetch(self, url: str) -> Tuple[str, str]:
        return await asyncio.to_thread(self._get, url)


# --------------------------------------------------------------------------- #
# Markup → NavigationNode tree
# --------------------------------------------------------------------------- #
def _nearest_list(element, stop: Tag) -> Optional[Tag]:
    """Closest ``ul``/``ol`` above *element*, not looking past *stop*."""
    for parent in element.parents:
        if parent is stop:
            return None
        if parent.name in _LISTS:
            return parent
    return None


def _top_level_lists(container: Tag) -> List[Tag]:
    if container.name in _LISTS:
        return [container]
    return [lst for lst in container.find_all(_LISTS) if _nearest_list(lst, container) is None]


def _clean(text: str) -> str:
    return " ".join(text.split())


def _own_text(li: Tag) -> str:
    """First text of *li* outside its nested lists (a section heading)."""
    for s in li.find_all(string=True):
        if s.parent.name in ("script", "style") or _nearest_list(s, li) is not None:
            continue
        text = _clean(s)
        if text:
            return text
    return ""


def _item_node(li: Tag, base_url: str) -> NavigationNode:
    nested = _top_level_lists(li)
    anchor = next(
        (a for a in li.find_all("a", href=True) if _nearest_list(a, li) is None),
        None,
    )
    url = resolve_href(anchor["href"], base_url) if anchor is not None else None
    label = _clean(anchor.get_text(" ")) if anchor is not None else ""
    node = NavigationNode(label=label or _own_text(li), url=url)
    for lst in nested:
        for child in _list_nodes(lst, base_url):
            node.add_child(child)
    return node


def _list_nodes(lst: Tag, base_url: str) -> List[NavigationNode]:
    return [_item_node(li, base_url) for li in lst.find_all("li", recursive=False)]


def build_tree(container: Tag, base_url: str) -> List[NavigationNode]:
    """
    Nested ``ul/ol > li`` markup becomes a node tree. Containers without list
    markup (div-based sidebars) become a flat list of leaf links.
    """
    lists = _top_level_lists(container)
    nodes: List[NavigationNode] = []
    if not lists:
        for a in container.find_all("a", href=True):
            url = resolve_href(a["href"], base_url)
            if url:
                nodes.append(NavigationNode(label=_clean(a.get_text(" ")), url=url))
        return nodes

    for lst in lists:
        nodes.extend(_list_nodes(lst, base_url))
    return nodes


def _walk(roots: Iterable[NavigationNode]):
    """Pre-order ``(node, depth)`` walk that visits every node object once."""
    seen: set[int] = set()
    stack = [(node, 0) for node in reversed(list(roots))]
    while stack:
        node, depth = stack.pop()
        if id(node) in seen:
            log.debug("navigation cycle at %r - edge not re-traversed", node.label)
            continue
        seen.add(id(node))
        yield node, depth
        stack.extend((child, depth + 1) for child in reversed(node.children))


def count_links(roots: Iterable[NavigationNode]) -> int:
    return sum(1 for node, _ in _walk(roots) if node.url)


def _title_for(node: NavigationNode) -> str:
    if node.label:
        return node.label
    segment = urlsplit(node.url or "").path.rstrip("/").rsplit("/", 1)[-1]
    segment = unquote(segment).replace("-", " ").replace("_", " ").strip()
    return segment or "index"


def flatten(
    roots: Sequence[NavigationNode], *, start_index: int = FIRST_PAGE_INDEX
) -> Tuple[PageRef, ...]:
    """
    Depth-first, pre-order flattening. A section that has its own page comes
    before its children; sections without a page are skipped but their
    children are still visited; a URL already emitted is never emitted again.
    """
    pages: List[PageRef] = []
    emitted: set[str] = set()
    for node, depth in _walk(roots):
        if not node.url:
            continue
        key = normalize_url(node.url)
        if key in emitted:
            continue
        emitted.add(key)
        pages.append(
            PageRef(
                url=node.url,
                title=_title_for(node),
                order_index=start_index + len(pages),
                depth=depth,
            )
        )
    return tuple(pages)


# --------------------------------------------------------------------------- #
# Extraction strategies
# --------------------------------------------------------------------------- #
class NavigationStrategy:
    """
    ``markers`` identify the site generator (empty = matches anything);
    ``containers`` locate its sidebar, most specific selector first.
    """

    name = "base"
    markers: Tuple[str, ...] = ()
    containers: Tuple[str, ...] = ()

    def matches(self, soup: BeautifulSoup) -> bool:
        return not self.markers or any(soup.select_one(m) is not None for m in self.markers)

    def _best(self, candidates: Iterable[Tag], base_url: str) -> List[NavigationNode]:
        best: List[NavigationNode] = []
        best_links = 0
        for container in candidates:
            nodes = build_tree(container, base_url)
            links = count_links(nodes)
            if links > best_links:
                best, best_links = nodes, links
        return best

    def extract(self, soup: BeautifulSoup, base_url: str) -> List[NavigationNode]:
        for selector in self.containers:
            nodes = self._best(soup.select(selector), base_url)
            if nodes:
                return nodes
        return []


class GitBookStrategy(NavigationStrategy):
    name = "gitbook"
    markers = (
        "body > .gitbook-root",
        "body > div.scroll-nojump",
        '[data-testid="table-of-contents"]',
        'a[href*="gitbook.io"]',
        'a[href*="gitbook.com"]',
    )
    containers = (
        '[data-testid="table-of-contents"]',
        "aside nav",
        "aside",
        'nav[role="navigation"]',
    )


class DocusaurusStrategy(NavigationStrategy):
    name = "docusaurus"
    markers = (
        "div#__docusaurus",
        "div.docusaurus-root",
        "nav.navbar--fixed-top",
        "div.navbar__logo",
        'script[src*="docusaurus"]',
    )
    containers = (
        "ul.theme-doc-sidebar-menu",
        "nav.menu",
        "aside .menu",
    )

    def matches(self, soup: BeautifulSoup) -> bool:
        if super().matches(soup):
            return True
        return any(
            "__DOCUSAURUS__" in (s.string or "") or "docusaurus" in (s.string or "")
            for s in soup.find_all("script")
        )


class MkDocsStrategy(NavigationStrategy):
    name = "mkdocs"
    markers = (
        'meta[name="generator"][content*="mkdocs" i]',
        "nav.md-nav--primary",
    )
    containers = (
        "nav.md-nav--primary",
        ".wy-menu-vertical",
        "nav.bs-sidebar",
        "div.bs-sidebar",
    )


class SphinxStrategy(NavigationStrategy):
    name = "sphinx"
    markers = (
        'meta[name="generator"][content*="sphinx" i]',
        ".wy-menu-vertical",
        "div.sphinxsidebar",
        ".bd-sidebar",
    )
    containers = (
        ".wy-menu-vertical",
        "nav.bd-docs-nav",
        ".bd-sidebar-primary",
        "div.sphinxsidebarwrapper",
    )


class GenericStrategy(NavigationStrategy):
    """Any sidebar-looking element; the one listing the most pages wins."""

    name = "generic"
    containers = (
        '[role="navigation"]',
        "nav",
        "aside",
        ".sidebar",
        "#sidebar",
        ".toc",
        "#toc",
        ".menu",
    )

    def extract(self, soup: BeautifulSoup, base_url: str) -> List[NavigationNode]:
        candidates = []
        for selector in self.containers:
            candidates.extend(soup.select(selector))
        return self._best(candidates, base_url)


DEFAULT_STRATEGIES: Tuple[NavigationStrategy, ...] = (
    GitBookStrategy(),
    DocusaurusStrategy(),
    MkDocsStrategy(),
    SphinxStrategy(),
    GenericStrategy(),
)


# --------------------------------------------------------------------------- #
# Discoverer
# --------------------------------------------------------------------------- #
def first_content_link(page_html: str, base_url: str) -> Optional[str]:
    """First same-site link that leaves *base_url* (landing page → docs)."""
    soup = BeautifulSoup(page_html, "lxml")
    here = normalize_url(base_url)
    for a in soup.find_all("a", href=True):
        url = resolve_href(a["href"], base_url)
        if url and normalize_url(url) != here:
            return url
    return None


class NavigationDiscoverer:
    def __init__(
        self,
        source: PageSource,
        *,
        strategies: Sequence[NavigationStrategy] | None = None,
    ):
        self.source = source
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES
        self.strategy: NavigationStrategy | None = None
        self.root_url: str | None = None
        self.root_html: str | None = None

    def extract_tree(self, page_html: str, base_url: str) -> List[NavigationNode]:
        soup = BeautifulSoup(page_html, "lxml")
        for strategy in self.strategies:
            if not strategy.matches(soup):
                continue
            nodes = strategy.extract(soup, base_url)
            if count_links(nodes):
                self.strategy = strategy
                log.info("Navigation extracted with the %s strategy", strategy.name)
                return nodes
            log.debug("%s strategy matched but found no pages", strategy.name)
        return []

    async def discover(self, root_url: str) -> Tuple[PageRef, ...]:
        if not is_http_url(root_url):
            raise InvalidURL(f"{root_url!r} is not an http/https URL")

        log.info("Visiting %s", root_url)
        final_url, page_html = await self.source.fetch(root_url)
        self.root_url, self.root_html = final_url, page_html
        tree = self.extract_tree(page_html, final_url)

        if not tree:
            hop = first_content_link(page_html, final_url)
            if hop:
                log.info("No navigation on %s - trying %s", final_url, hop)
                hop_url, hop_html = await self.source.fetch(hop)
                tree = self.extract_tree(hop_html, hop_url)

        if not tree:
            raise DiscoveryError(f"no navigation tree found on {root_url}")

        pages = flatten(tree)
        log.info("Discovered %d pages", len(pages))
        for page in pages:
            log.debug("  %04d %s%s (%s)", page.order_index, "  " * page.depth, page.title, page.url)
        return pages


async def discover(
    root_url: str,
    source: PageSource,
    *,
    strategies: Sequence[NavigationStrategy] | None = None,
) -> Tuple[PageRef, ...]:
    return await NavigationDiscoverer(source, strategies=strategies).discover(root_url)
