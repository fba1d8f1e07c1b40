# src/aquavolt_client/core/logging.py
from __future__ import annotations
import logging
import os

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)-8s %(name)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_KNOWN = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")

# chatty transport loggers; only surfaced when LOG_LEVEL=DEBUG
_TRANSPORT_LOGGERS = ("httpx", "httpcore")

def level_from_env(var: str = "LOG_LEVEL", default: str = "INFO") -> int:
    name = (os.getenv(var) or default).strip().upper()
    return getattr(logging, name if name in _KNOWN else default)

def setup_logging() -> None:
    """
    Configure root logging once; calling again only re-applies LOG_LEVEL.
    A root that already has handlers (pytest, a host app) keeps them.
    """
    level = level_from_env()
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        root.addHandler(handler)
    root.setLevel(level)

    transport_level = level if level <= logging.DEBUG else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
