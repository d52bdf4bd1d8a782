# src/bulb_gateway/__main__.py
"""Command-line entry point: ``python -m bulb_gateway``."""

from __future__ import annotations

import sys

from bulb_gateway.core.logging import configure_logging
from bulb_gateway.core.settings import Settings
from bulb_gateway.lifecycle import run


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    sys.exit(run(settings))


if __name__ == "__main__":
    main()
