"""Logging setup shared by the CLI and the MCP server."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from gumploop.constants import LOG_DIR, LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None, log_to_file: bool = True) -> None:
    """Log to stderr and to a rotating file under ``LOG_DIR``.

    stdout is never used: the MCP stdio transport owns it.
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_to_file:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    LOG_DIR / "gumploop.log", maxBytes=5 * 1024 * 1024, backupCount=3
                )
            )
        except OSError as e:
            print(f"gumploop: file logging disabled: {e}", file=sys.stderr)

    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
