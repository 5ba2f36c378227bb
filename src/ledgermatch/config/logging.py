"""Root logger setup for the ledgermatch CLI."""

from __future__ import annotations

import logging

# one line per RPC request or migration step is noise at INFO
_CHATTY_LOGGERS = ("httpx", "alembic.runtime.migration")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Log to stderr as ``time LEVEL [logger] message``.

    ``force=True`` replaces handlers installed earlier, e.g. by a test run.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
