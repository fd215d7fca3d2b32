"""Public package API."""

__version__ = "0.1.0"

from .download import DownloadConfig, RunSummary, run_download  # noqa: E402
from .merger import merge_pages  # noqa: E402
from .navigation import discover  # noqa: E402

__all__ = ["DownloadConfig", "RunSummary", "discover", "merge_pages", "run_download", "__version__"]
