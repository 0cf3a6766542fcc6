from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: Optional[str] = None) -> None:
    """Configure console logging via Rich, on stderr.

    stdout belongs to the supervised command, so log records never go there.

    Environment override:
      - PLL_LOG_LEVEL: DEBUG/INFO/WARNING/ERROR
    """
    env_level = os.getenv("PLL_LOG_LEVEL")
    log_level = (level or env_level or "WARNING").upper()
    # getLevelName maps known names to ints and anything else to "Level X"
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Unknown log level: {log_level} (expected DEBUG/INFO/WARNING/ERROR)")

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, markup=False)],
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
