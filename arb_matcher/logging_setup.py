from __future__ import annotations

import logging
from typing import Iterable


def configure_logging(level: str, *, quiet: Iterable[str] = ("arb_matcher.similarity",)) -> None:
    """Configure root logging for a host process embedding the matcher.

    Modules in ``quiet`` are held at WARNING; bulk similarity scans log
    one line per candidate pair.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
