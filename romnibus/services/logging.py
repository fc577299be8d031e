"""Logging configuration service for ROMnibus."""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

APP_LOG_NAME = "app.log"
ERROR_LOG_NAME = "error.log"


class LoggingService:
    """Service for configuring and managing application logging."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Path | None = None,
        quiet: bool = False,
    ) -> None:
        """Initialize the logging service.

        Args:
            log_level: The minimum log level to capture
            log_dir: Directory for log files (None for console only)
            quiet: If True, send nothing to the console
        """
        self.log_level = log_level.upper()
        self.log_dir = log_dir
        self.quiet = quiet
        self.is_development = os.getenv("ROMNIBUS_ENV", "development") == "development"

    def configure(self) -> None:
        """Configure stdlib handlers and the structlog processor chain."""
        self._configure_stdlib_logging()

        structlog.configure(
            processors=self._get_processors(),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _configure_stdlib_logging(self) -> None:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()

        numeric_level = getattr(logging, self.log_level, logging.INFO)
        root_logger.setLevel(numeric_level)

        # Console output goes to stderr so command results on stdout stay clean
        if not self.quiet:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(numeric_level)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(console_handler)

        if self.log_dir:
            self._setup_file_logging(root_logger, numeric_level)

    def _setup_file_logging(self, root_logger: logging.Logger, level: int) -> None:
        """Set up rotating application and error logs."""
        if not self.log_dir:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter("%(message)s")

        app_handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / APP_LOG_NAME,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(file_formatter)
        root_logger.addHandler(app_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / ERROR_LOG_NAME,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

    def _get_processors(self) -> list[Any]:
        """Console rendering for interactive development, JSON everywhere else."""
        common_processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.is_development and not self.log_dir:
            return common_processors + [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
        return common_processors + [structlog.processors.JSONRenderer()]

    def get_logger(self, name: str | None = None) -> structlog.stdlib.BoundLogger:
        return structlog.stdlib.get_logger(name)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    environment: str | None = None,
    quiet: bool = False,
) -> LoggingService:
    """Set up application logging.

    Args:
        log_level: Minimum log level to capture
        log_dir: Directory for log files (None for console only)
        environment: Environment name (development/production)
        quiet: If True, disable console logging

    Returns:
        Configured LoggingService instance
    """
    if environment:
        os.environ["ROMNIBUS_ENV"] = environment

    service = LoggingService(log_level=log_level, log_dir=log_dir, quiet=quiet)
    service.configure()
    return service
