"""
sections-rw - Main entry point.

This module starts the service:
- Loads configuration from the environment
- Opens the graph store and ensures its constraints (once per start)
- Serves the HTTP API with uvicorn

Usage:
    python -m rwapp.sections_rw.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Constraints are ensured before the first request is accepted
    - A configuration error exits with status 1 before anything starts

How to change safely:
    - Keep startup side effects idempotent; the process may restart at any time
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_http_app
from .config import ServiceConfig
from .graph import GraphStoreError, create_graph_store
from .sections import SectionsService

logger = logging.getLogger(__name__)


def setup_logging(config: ServiceConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Service configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_service(config: ServiceConfig) -> SectionsService:
    """Create the sections service over the configured graph store."""
    store = create_graph_store(config)
    return SectionsService(store)


def main() -> None:
    """Main entry point."""
    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    service = build_service(config)

    try:
        asyncio.run(service.initialise())
    except GraphStoreError as e:
        logger.error(f"Failed to initialise graph store: {e}", exc_info=True)
        sys.exit(1)

    app = create_http_app(service)

    logger.info(f"Starting sections-rw on {config.http.host}:{config.http.port}")
    uvicorn.run(app, host=config.http.host, port=config.http.port, log_config=None)


if __name__ == "__main__":
    main()
