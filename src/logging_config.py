import logging
import os
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once for CLI and web entry points"""
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)-18s] %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(handler)


def mask(secret: Optional[str]) -> str:
    if not secret:
        return "(unset)"
    return f"{secret[:10]}... (length: {len(secret)})"
