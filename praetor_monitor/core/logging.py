"""
Structured logging setup.

Log records go to stderr (or LOG_PATH) so that command output on stdout
stays clean for the operator.
"""

import logging
import sys
from typing import Optional

import structlog

from praetor_monitor.core.config import Settings, settings as default_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure stdlib logging and structlog from the log settings."""
    settings = settings or default_settings
    level = getattr(logging, settings.log.level.upper(), logging.INFO)

    if settings.log.path:
        handler: logging.Handler = logging.FileHandler(settings.log.path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[handler],
        force=True,
    )
    # httpx logs every request at INFO; keep it out of the operator's way
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.log.format == "json" else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
