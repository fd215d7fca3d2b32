"""
Tiny façade over :pymod:`logging` so internal modules can do

```python
from book2pdf.logger import log
log.debug("Hi")
```

and end-users can tweak verbosity via the environment:

```bash
export BOOK2PDF_LOGLEVEL=DEBUG
```
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

_ENV_VAR = "BOOK2PDF_LOGLEVEL"

# third-party loggers that are chatty at DEBUG
_QUIET_LOGGERS = ("asyncio", "urllib3", "pypdf")


def configure_logging(verbose: int = 0, *, console: Console | None = None) -> None:
    """
    Initialize the ``book2pdf`` logger once. ``BOOK2PDF_LOGLEVEL`` overrides
    verbosity. Verbosity: 0 => WARNING, 1 => INFO, >=2 => DEBUG.
    """
    if log.handlers:
        return
    env_level = os.getenv(_ENV_VAR)
    if env_level:
        level = getattr(logging, env_level.upper(), logging.INFO)
    else:
        level = [logging.WARNING, logging.INFO, logging.DEBUG][min(verbose, 2)]

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_level=True,
        show_path=False,
        markup=False,
    )
    handler.setLevel(level)
    log.setLevel(level)
    log.addHandler(handler)
    log.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


log = logging.getLogger("book2pdf")
