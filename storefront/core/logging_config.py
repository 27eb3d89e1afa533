# storefront/core/logging_config.py
"""
Centralized logging configuration for the application.

Configures the root logger once and quiets the chatty driver and client
libraries so reservation and settlement logs stay readable.
"""

import logging
from typing import Optional

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "sqlalchemy",
    "sqlalchemy.engine",
    "asyncpg",
    "aiosqlite",
    "apscheduler",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
)


def configure_logging(log_level: Optional[str] = None):
    """
    Configure logging for the application.

    - App code (``storefront``): LOG_LEVEL (default INFO)
    - Database drivers, HTTP clients and the scheduler: WARNING only
    """
    if log_level is None:
        from storefront.core.config import get_settings
        log_level = get_settings().LOG_LEVEL
    log_level = log_level.upper()
    level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("storefront").setLevel(level)
    logging.getLogger("__main__").setLevel(level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")
