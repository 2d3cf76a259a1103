"""
Application Logger

Consistent logging for the ChartIQ practice backend. Every module obtains its
logger through ``get_logger(__name__)`` or ``app_logger.getChild(...)`` so that
level, JSON output and file output are controlled from one place.
"""

import os
import sys
import json
import time
import logging
import datetime
import functools
import asyncio
from typing import Dict, Any, Optional, Union, Callable, TypeVar

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER_NAME = "chartiq"

F = TypeVar('F', bound=Callable[..., Any])

__all__ = [
    'configure_logger',
    'get_logger',
    'LoggerAdapter',
    'JsonFormatter',
    'app_logger',
    'log_execution_time'
]


class JsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as a single JSON object.

    Extra context attached through ``LoggerAdapter`` (the ``data`` attribute)
    is merged into the top-level object, so session ids and tool names are
    searchable fields in a log aggregator.
    """

    def __init__(self, *, indent: Optional[int] = None):
        super().__init__()
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        log_object = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        if record.exc_info:
            log_object["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        if hasattr(record, 'data') and isinstance(record.data, dict):
            log_object.update(record.data)

        return json.dumps(log_object, indent=self.indent, default=str)


def configure_logger(
    name: str = APP_LOGGER_NAME,
    level: Union[str, int] = logging.INFO,
    format_string: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    use_json: bool = False,
    log_file: Optional[str] = None,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure a logger with console and optional file handlers.

    Args:
        name: Logger name
        level: Log level name or number
        format_string: Format used when ``use_json`` is False
        date_format: Date format string
        use_json: Emit JSON lines instead of plain text
        log_file: Optional path of a log file
        console_output: Whether to log to stdout

    Returns:
        Configured logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []

    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(format_string, date_format)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except (FileNotFoundError, PermissionError) as e:
            logging.getLogger("fallback").warning(f"Could not create log file {log_file}: {e}")

    return logger


def get_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """Get a logger, optionally as a child of ``parent``."""
    if parent:
        return parent.getChild(name)
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches a context dictionary to every record.

    Used by the practice session controller to tag log lines with the
    learner id and chart theme.
    """

    def __init__(self, logger: logging.Logger, context: Dict[str, Any] = None):
        super().__init__(logger, context or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs = kwargs.copy()
        extra = kwargs.setdefault('extra', {})
        data = extra.setdefault('data', {})
        if self.extra:
            data.update(self.extra)
        return msg, kwargs


def get_app_logger() -> logging.Logger:
    """Get or lazily configure the application logger."""
    logger = logging.getLogger(APP_LOGGER_NAME)

    if not logger.handlers:
        return configure_logger(
            name=APP_LOGGER_NAME,
            level=os.environ.get("LOG_LEVEL", "INFO"),
            use_json=os.environ.get("LOG_JSON", "false").lower() == "true",
            log_file=os.environ.get("LOG_FILE"),
            console_output=True
        )

    return logger


app_logger = get_app_logger()


def log_execution_time(logger: Optional[logging.Logger] = None) -> Callable[[F], F]:
    """
    Decorator that logs how long a sync or async function took.

    Args:
        logger: Logger to use; defaults to the application logger
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                (logger or get_app_logger()).debug(
                    f"{func.__name__} executed in {time.time() - start_time:.3f} seconds"
                )
                return result
            except Exception as e:
                (logger or get_app_logger()).error(
                    f"{func.__name__} failed after {time.time() - start_time:.3f} seconds: {str(e)}"
                )
                raise

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
                (logger or get_app_logger()).debug(
                    f"{func.__name__} executed in {time.time() - start_time:.3f} seconds"
                )
                return result
            except Exception as e:
                (logger or get_app_logger()).error(
                    f"{func.__name__} failed after {time.time() - start_time:.3f} seconds: {str(e)}"
                )
                raise

        return async_wrapper if asyncio.iscoroutinefunction(func) else wrapper
    return decorator
