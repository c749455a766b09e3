"""Process entry point: logging setup and the uvicorn server."""

import argparse
import logging
import sys
from typing import Optional

import structlog
import uvicorn

from citus_control.api.app import create_app
from citus_control.config import DEFAULT_CONFIG_PATH, Settings, load_settings


def configure_logging(level: str = "info", json_output: bool = False) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum log level name
        json_output: Render JSON lines instead of the console format
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Citus cluster control plane")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    parser.add_argument("--host", default=None, help="Bind address (overrides config)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (overrides config)")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings: Settings = load_settings(args.config)
    configure_logging(settings.server.log_level, settings.server.log_json)

    logger = structlog.get_logger(__name__)
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    logger.info("server_starting", host=host, port=port)

    uvicorn.run(
        create_app(settings),
        host=host,
        port=port,
        log_level=settings.server.log_level,
        timeout_keep_alive=120,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
