#!/usr/bin/env python3
"""FastAPI server runner.

Builds its own app from the loaded config.  The module-level
``signal_desk.api.app:app`` is for running under an external server
(``uvicorn signal_desk.api.app:app``); it reads config on startup.
"""

import uvicorn
import structlog

from signal_desk.api.app import create_app
from signal_desk.config.loader import load_config
from signal_desk.logging.setup import setup_logging

logger = structlog.get_logger("api")


def main(config_path: str | None = None, host: str = "0.0.0.0", port: int = 8000):
    """Run the FastAPI server."""
    config = load_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format)

    logger.info("api_starting", host=host, port=port)

    try:
        uvicorn.run(
            create_app(config=config),
            host=host,
            port=port,
            log_config=None  # Use our structlog setup
        )
    except Exception as e:
        logger.error("api_failed", error=str(e))
        raise


if __name__ == "__main__":
    main()
