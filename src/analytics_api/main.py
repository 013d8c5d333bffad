"""
Punto de entrada del Analytics Collector
"""
import sys

import uvicorn

from .event_collector.config import ConfigurationError, get_settings
from .event_collector.logging_config import configure_logging

# uvicorn no tiene "trace" ni "warn"
UVICORN_LOG_LEVELS = {"trace": "debug", "debug": "debug", "info": "info", "warn": "warning", "error": "error"}


def main():
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.logging.level)

    # uvicorn drena los requests en curso ante SIGINT/SIGTERM antes del shutdown del lifespan
    uvicorn.run(
        "analytics_api.event_collector.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=UVICORN_LOG_LEVELS.get(settings.logging.level.lower(), "info"),
        timeout_graceful_shutdown=30,
    )


if __name__ == "__main__":
    main()
