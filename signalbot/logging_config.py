import logging
import sys
from typing import Optional
from functools import lru_cache

def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure application-wide logging."""

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Log to stderr so `--json` output on stdout stays parseable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger

@lru_cache()
def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance for a module."""
    if name is None:
        name = __name__
    return logging.getLogger(name)
