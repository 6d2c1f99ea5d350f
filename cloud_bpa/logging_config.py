"""Logging configuration for the Cloud BPA analysis core."""

import logging
import os
import sys
from typing import Optional


LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        if sys.stdout.isatty():  # Only use colors for terminal output
            record = logging.makeLogRecord(record.__dict__)
            log_color = self.COLORS.get(record.levelname, '')
            record.levelname = f"{log_color}{record.levelname}{self.RESET}"
            record.name = f"\033[34m{record.name}{self.RESET}"  # Blue for logger name

        return super().format(record)


def setup_logging(log_level: Optional[str] = None) -> None:
    """Setup centralized logging configuration for the parser, analyzer and API."""

    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    # Configure root logger
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Apply colored formatter
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    configure_component_loggers()
    configure_external_loggers()


def configure_component_loggers() -> None:
    """Configure logging for core components."""
    component_loggers = [
        'cloud_bpa.parser',
        'cloud_bpa.parser.archive',
        'cloud_bpa.differential',
        'cloud_bpa.findings',
        'cloud_bpa.service',
        'cloud_bpa.api',
    ]

    for logger_name in component_loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.DEBUG)


def configure_external_loggers() -> None:
    """Configure logging levels for external libraries."""
    external_loggers = {
        'botocore': logging.WARNING,
        'urllib3': logging.WARNING,
        'asyncio': logging.WARNING,
        'uvicorn.access': logging.WARNING,
        'uvicorn.error': logging.INFO,
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(level)


def get_component_logger(component_name: str) -> logging.Logger:
    """Get a properly configured logger for a core component."""
    return logging.getLogger(f"cloud_bpa.{component_name}")
