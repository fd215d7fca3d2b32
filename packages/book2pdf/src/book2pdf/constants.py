"""
Single place for constants that are used across the package.
"""

import re
from typing import Final, FrozenSet

DEFAULT_OUTDIR: Final = "output_book2pdf"
PAGES_DIRNAME: Final = "pages"
DEFAULT_MERGE_DIR: Final = f"{DEFAULT_OUTDIR}/{PAGES_DIRNAME}"
DEFAULT_MERGE_OUTPUT: Final = "merged.pdf"

# --------------------------- runtime defaults --------------------------- #
DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_CONCURRENCY: Final[int] = 4
DEFAULT_RETRIES: Final[int] = 2
DEFAULT_BACKOFF_BASE: Final[float] = 1.0
DEFAULT_BACKOFF_MAX: Final[float] = 30.0

DEFAULT_VIEWPORT: Final[tuple[int, int]] = (1920, 1080)
DEFAULT_SCALE: Final[float] = 0.75
# settle time after load so client-side sidebars finish expanding (ms)
NAV_SETTLE_MS: Final[int] = 1500

# --------------------------- page file naming -------------------------- #
INDEX_WIDTH: Final[int] = 4
COVER_INDEX: Final[int] = 0
FIRST_PAGE_INDEX: Final[int] = 1
MAX_TITLE_SLUG: Final[int] = 80
PAGE_FILE_RE: Final = re.compile(r"^(?P<index>\d{4,})-(?P<slug>.+)\.pdf$", re.IGNORECASE)

# hrefs pointing at these are never documentation pages
ASSET_SUFFIXES: Final[FrozenSet[str]] = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico",
    ".zip", ".gz", ".tar", ".tgz", ".pdf", ".epub",
    ".css", ".js", ".json", ".xml", ".txt",
    ".mp4", ".webm", ".mp3",
})
ASSET_PATH_MARKERS: Final[tuple[str, ...]] = ("/assets/", "/_static/", "/static/")

# NOTE: static pool kept only as *fallback* when fake-useragent cannot reach
# its bundled data.
USER_AGENTS_POOL: Final[list[str]] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
]
