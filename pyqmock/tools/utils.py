"""
Logging for the engine, API and CLI.

Every component logger is a child of the ``pyqmock`` package logger; handlers
live on the package logger only, so records reach pytest's caplog and any
root handler through normal propagation.
"""

import logging
import logging.handlers
import sys
import os
import json
import time
import functools
from pathlib import Path
from typing import Optional, Dict, Callable, List
from datetime import datetime, timezone
from dataclasses import dataclass

PACKAGE_LOGGER = "pyqmock"

LINE_FORMATS = {
    "standard": "%(asctime)s | %(name)-28s | %(levelname)-8s | %(message)s",
    "detailed": ("%(asctime)s | %(levelname)-8s | %(name)-28s | "
                 "%(module)-14s:%(funcName)-22s:%(lineno)-4d | %(message)s"),
}
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class LoggingConfig:
    log_level: str = "INFO"
    log_format: str = "standard"
    log_to_file: bool = True
    log_directory: str = "logs"
    log_file: str = "pyqmock.log"
    max_file_size_mb: int = 10
    backup_count: int = 5
    enable_console: bool = True
    enable_json: bool = False

    @classmethod
    def from_environment(cls) -> 'LoggingConfig':
        return cls(
            log_level=os.getenv("PYQ_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("PYQ_LOG_FORMAT", "standard").lower(),
            log_to_file=_env_flag("PYQ_LOG_TO_FILE", "true"),
            log_directory=os.getenv("PYQ_LOG_DIR", "logs"),
            max_file_size_mb=int(os.getenv("PYQ_LOG_MAX_SIZE_MB", "10")),
            backup_count=int(os.getenv("PYQ_LOG_BACKUP_COUNT", "5")),
            enable_console=_env_flag("PYQ_LOG_CONSOLE", "true"),
            enable_json=_env_flag("PYQ_LOG_JSON", "false"),
        )

    @property
    def level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, tagged with the attempt being processed"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name.rpartition('.')[2],
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        attempt_id = getattr(record, 'correlation_id', None)
        if attempt_id:
            entry["attempt_id"] = attempt_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class DetailedFormatter(logging.Formatter):
    """Line format with source location, prefixed by the attempt id when set"""

    def __init__(self, fmt: str = LINE_FORMATS["detailed"]):
        super().__init__(fmt, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        attempt_id = getattr(record, 'correlation_id', None)
        return f"[{attempt_id}] {line}" if attempt_id else line


class CorrelationFilter(logging.Filter):
    """Stamps the active attempt id onto every record."""

    def __init__(self):
        super().__init__()
        self.correlation_id: Optional[str] = None

    def filter(self, record: logging.LogRecord) -> bool:
        if self.correlation_id:
            record.correlation_id = self.correlation_id
        return True


class LoggerManager:
    _config: Optional[LoggingConfig] = None
    _handlers: List[logging.Handler] = []
    _correlation_filter = CorrelationFilter()
    _loggers: Dict[str, logging.Logger] = {}

    @classmethod
    def initialize(cls, config: Optional[LoggingConfig] = None):
        """
        Configure the package logger. Without ``config`` this is a no-op once
        logging is set up; an explicit ``config`` replaces the handlers.
        """
        if cls._config is not None and config is None:
            return

        cls._config = config or LoggingConfig.from_environment()
        package = logging.getLogger(PACKAGE_LOGGER)
        for handler in cls._handlers:
            package.removeHandler(handler)
            handler.close()

        cls._handlers = cls._build_handlers(cls._config)
        for handler in cls._handlers:
            package.addHandler(handler)
        package.setLevel(cls._config.level)

    @classmethod
    def _build_handlers(cls, config: LoggingConfig) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []
        if config.enable_console:
            handlers.append(logging.StreamHandler(sys.stdout))
        if config.log_to_file:
            directory = Path(config.log_directory)
            directory.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                filename=directory / config.log_file,
                maxBytes=config.max_file_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
                encoding='utf-8',
            ))

        formatter = cls._formatter(config)
        for handler in handlers:
            handler.setFormatter(formatter)
            handler.addFilter(cls._correlation_filter)
        return handlers

    @staticmethod
    def _formatter(config: LoggingConfig) -> logging.Formatter:
        if config.enable_json or config.log_format == "json":
            return JSONFormatter()
        if config.log_format == "detailed":
            return DetailedFormatter()
        return DetailedFormatter(LINE_FORMATS["standard"])

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if cls._config is None:
            cls.initialize()
        if name not in cls._loggers:
            cls._loggers[name] = logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
        return cls._loggers[name]

    @classmethod
    def set_correlation_id(cls, correlation_id: Optional[str]):
        cls._correlation_filter.correlation_id = correlation_id


def get_logger(name: str) -> logging.Logger:
    return LoggerManager.get_logger(name)


def timed_execution(operation_name: Optional[str] = None):
    """Log how long a pure engine step took (debug level) and any failure."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                get_logger("Timing").warning(
                    f"{name} failed after {(time.perf_counter() - started) * 1000:.2f}ms: "
                    f"{type(e).__name__}: {e}"
                )
                raise
            get_logger("Timing").debug(f"{name} took {(time.perf_counter() - started) * 1000:.2f}ms")
            return result

        return wrapper
    return decorator


def initialize_logging(config: Optional[LoggingConfig] = None):
    LoggerManager.initialize(config)


def set_correlation_id(correlation_id: str):
    LoggerManager.set_correlation_id(correlation_id)


def clear_correlation_id():
    LoggerManager.set_correlation_id(None)
