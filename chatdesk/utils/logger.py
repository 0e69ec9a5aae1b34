"""Simple logger utility."""
import logging
import os

logger = logging.getLogger("chatdesk")
if not logger.handlers:
    h = logging.StreamHandler()
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    h.setFormatter(fmt)
    logger.addHandler(h)
    logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))


def get_logger(name: str = None) -> logging.Logger:
    if not name:
        return logger
    return logger.getChild(name)
