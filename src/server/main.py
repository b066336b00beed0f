"""Process entry point: configure logging, load config, run uvicorn.

Usage:
    python -m src.server.main

Exit codes:
    0: clean shutdown
    1: missing or invalid configuration (server never binds)
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn

from src.config import ConfigurationError, RelayConfig
from src.server.app import create_app

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    configure_logging()
    try:
        config = RelayConfig.from_env()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    app = create_app(config)
    logger.info("Starting relay on port %d", config.port)
    uvicorn.run(app, host="0.0.0.0", port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
