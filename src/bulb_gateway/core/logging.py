"""Process-wide logging setup."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level_name: str = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level.

    uvicorn is started with ``log_config=None`` so its loggers propagate here.
    """
    level = getattr(logging, level_name.strip().upper(), logging.INFO)

    root = logging.getLogger()
    if getattr(root, "_bulb_configured", False):
        root.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_bulb_configured", True)
