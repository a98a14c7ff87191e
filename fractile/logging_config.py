import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the package logger. Safe to call twice."""
    logger = logging.getLogger("fractile")
    logger.setLevel(level)
    if not any(getattr(h, "_fractile", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT, datefmt="%H:%M:%S"))
        handler._fractile = True
        logger.addHandler(handler)
    return logger
