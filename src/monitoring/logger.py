# ============================================================================
# MailLens -- Structured Logger (src/monitoring/logger.py)
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Sets up the logging system for the whole engine. Every important
#   event (index opened, container parsed, attachment located, parse
#   failure degraded to a partial record) gets recorded as a structured
#   log entry.
#
# WHY "STRUCTURED" LOGGING?
#   Normal logging: "Parsed 12345.emlx, body 812 chars, 2 attachments"
#   Structured logging: {"event": "container_parsed", "message_id": 12345,
#                        "body_chars": 812, "attachments": 2}
#
#   When a lookup fails on someone else's Mac, the JSON lines are the
#   only record of which on-disk layout the engine walked and where it
#   gave up. jq over the log file answers that in one line.
#
# LOG FILE TYPES:
#   - app_YYYY-MM-DD.log:   General events (queries, lookups, parses)
#   - error_YYYY-MM-DD.log: Failures that degraded a result
#
# WHERE LOGS GO:
#   Files under the log directory (config paths.log_dir or the
#   MAILLENS_LOG_DIR env var). Console output is warnings only and goes
#   to stderr, because the front end that embeds this engine usually
#   owns stdout for its own protocol.
#
# HOW TO USE (from other code):
#   from src.monitoring.logger import get_app_logger
#   logger = get_app_logger("mail_index")
#   logger.info("search_complete", results=12, limit=20)
#
# DEPENDENCIES:
#   - structlog: A structured logging library that outputs JSON
#   - Python's built-in logging module (structlog builds on top of it)
#
# INTERNET ACCESS: None -- writes to local files only
# ============================================================================

import os
import sys
import logging
from pathlib import Path
from typing import Optional
import structlog
from datetime import datetime


DEFAULT_LOG_DIR = "logs"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

class LoggerSetup:
    """Initialize and configure structlog for MailLens"""

    def __init__(self, log_dir: Optional[str] = None):
        self.log_dir = Path(log_dir or os.getenv("MAILLENS_LOG_DIR") or DEFAULT_LOG_DIR)
        self._configured = False
        self._file_handlers = {}

    def setup(self) -> None:
        """Configure structlog with timestamped log files"""
        if self._configured:
            return

        # Console: warnings and up, stderr only. stdout belongs to
        # whatever front end embeds us. The level sits on the handler so
        # the DEBUG-level file loggers below don't echo to the console.
        root = logging.getLogger()
        if not any(getattr(h, "_maillens_console", False) for h in root.handlers):
            console = logging.StreamHandler(sys.stderr)
            console.setLevel(logging.WARNING)
            console.setFormatter(logging.Formatter("%(message)s"))
            console._maillens_console = True
            root.addHandler(console)

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
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._configured = True

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """Get a named logger (console only, warnings and above)"""
        self.setup()
        return structlog.get_logger(name)

    def get_file_logger(self, name: str, log_type: str = "app") -> structlog.stdlib.BoundLogger:
        """
        Get a logger that also writes to a specific log file.
        log_type: "app" or "error"
        """
        self.setup()
        logger = structlog.get_logger(name)

        # One handler per (logger, log type); asking twice must not
        # double every line in the file.
        key = (name, log_type)
        if key not in self._file_handlers:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            log_file = self.log_dir / f"{log_type}_{self._get_date_str()}.log"
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter("%(message)s"))

            py_logger = logging.getLogger(name)
            py_logger.addHandler(handler)
            py_logger.setLevel(logging.DEBUG)
            self._file_handlers[key] = handler

        return logger

    def close(self) -> None:
        """Detach and close every file handler (used by tests and the CLI)"""
        for (name, _), handler in self._file_handlers.items():
            logging.getLogger(name).removeHandler(handler)
            handler.close()
        self._file_handlers.clear()

    @staticmethod
    def _get_date_str() -> str:
        """Get current date as YYYY-MM-DD string"""
        return datetime.now().strftime("%Y-%m-%d")


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_logger_setup: Optional[LoggerSetup] = None


def initialize_logging(log_dir: Optional[str] = None) -> LoggerSetup:
    """Initialize logging (call once at startup; later calls are no-ops)"""
    global _logger_setup
    if _logger_setup is None:
        _logger_setup = LoggerSetup(log_dir)
        _logger_setup.setup()
    return _logger_setup


def shutdown_logging() -> None:
    """Close log files and forget the singleton"""
    global _logger_setup
    if _logger_setup is not None:
        _logger_setup.close()
        _logger_setup = None


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger (auto-initializes if needed)"""
    return initialize_logging().get_logger(name)


def get_app_logger(name: str = "app") -> structlog.stdlib.BoundLogger:
    """Get app logger (writes to app_YYYY-MM-DD.log)"""
    return initialize_logging().get_file_logger(name, "app")


def get_error_logger(name: str = "error") -> structlog.stdlib.BoundLogger:
    """Get error logger (writes to error_YYYY-MM-DD.log)"""
    return initialize_logging().get_file_logger(name, "error")
