"""Logging setup for the risk wizard service."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# PUBLIC_INTERFACE
def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger and set its level."""
    logger = logging.getLogger("riskwizard")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_riskwizard", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._riskwizard = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
