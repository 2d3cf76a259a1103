"""
Error Handling System for ChartIQ

This module provides:
1. The error taxonomy of the practice trainer (error codes and exceptions)
2. Retry with backoff for transient market-data failures
3. Structured error payloads for the API and for validation results
4. Standardized error logging
"""

import time
import logging
import traceback
import asyncio
import random
import functools
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union, cast
from datetime import datetime
from pydantic import BaseModel, Field, validator

T = TypeVar('T')
F = TypeVar('F', bound=Callable)

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Standard error codes for ChartIQ"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"

    # Market data
    DATA_UNAVAILABLE = "DataUnavailable"
    REQUEST_TIMEOUT = "RequestTimeout"

    # Annotation validation
    EMPTY_SUBMISSION = "EmptySubmission"
    INVALID_TOOL_STATE = "InvalidToolState"
    SCORING_AMBIGUITY = "ScoringAmbiguity"

    # Practice session
    INVALID_TRANSITION = "InvalidTransition"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None

    class Config:
        use_enum_values = True

    @validator('stack_trace', pre=True, always=False)
    def validate_stack_trace(cls, v):
        """Format stack trace if it's a string"""
        if isinstance(v, str):
            return v.splitlines()
        return v


class ChartIQError(Exception):
    """Base exception class for all ChartIQ errors"""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            retryable=self.retryable,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a dictionary"""
        return self.to_error_info(include_stack_trace).dict()

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {str(self.cause)}"
        return base_str


class DataUnavailableError(ChartIQError):
    """Market data could not be fetched for the requested asset/timeframe"""

    retryable = True

    def __init__(
        self,
        message: str,
        asset: Optional[str] = None,
        timeframe: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        details = details or {}
        if asset is not None:
            details["asset"] = asset
        if timeframe is not None:
            details["timeframe"] = timeframe

        super().__init__(
            message=message,
            code=ErrorCode.DATA_UNAVAILABLE,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause
        )


class RequestTimeoutError(ChartIQError):
    """A fetch or validate request exceeded its time budget"""

    retryable = True

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=f"{operation} timed out after {timeout_seconds:g} seconds",
            code=ErrorCode.REQUEST_TIMEOUT,
            severity=ErrorSeverity.WARNING,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            cause=cause
        )


class EmptySubmissionError(ChartIQError):
    """Nothing was drawn and no explicit "no patterns" answer was given"""

    def __init__(self, tool: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["tool"] = tool
        super().__init__(
            message="Please draw on the chart before validating",
            code=ErrorCode.EMPTY_SUBMISSION,
            severity=ErrorSeverity.INFO,
            details=details
        )


class InvalidToolStateError(ChartIQError):
    """Validation was requested for a tool/part combination that cannot be scored"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_TOOL_STATE,
            severity=ErrorSeverity.ERROR,
            details=details
        )


class InvalidTransitionError(ChartIQError):
    """An event was dispatched in a session state that does not accept it"""

    def __init__(self, state: str, event: str):
        super().__init__(
            message=f"Event {event} is not allowed in state {state}",
            code=ErrorCode.INVALID_TRANSITION,
            severity=ErrorSeverity.ERROR,
            details={"state": state, "event": event}
        )


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR
) -> ChartIQError:
    """
    Convert a standard exception to a ChartIQError.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none
        default_code: Error code for the converted error

    Returns:
        Converted ChartIQError
    """
    if isinstance(exception, ChartIQError):
        return exception

    return ChartIQError(
        message=str(exception) or default_message,
        code=default_code,
        cause=exception
    )


def retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = (),
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Decorator for retrying functions when exceptions occur.

    Args:
        max_retries: Maximum number of retries
        retry_delay: Initial delay between retries in seconds
        backoff_factor: Factor to increase delay with each retry
        jitter: Random jitter factor to add to delay
        retry_exceptions: Tuple of exception types to retry on
        ignore_exceptions: Tuple of exception types to not retry on
        on_retry: Optional callback called before each retry

    Returns:
        Decorated function
    """
    def decorator(func: F) -> F:
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                retries = 0
                delay = retry_delay

                while True:
                    try:
                        return await func(*args, **kwargs)
                    except ignore_exceptions:
                        raise
                    except retry_exceptions as e:
                        retries += 1
                        if retries > max_retries:
                            raise

                        actual_delay = delay * (1 + random.uniform(-jitter, jitter))
                        if on_retry:
                            on_retry(retries, e, actual_delay)

                        logger.warning(
                            f"Retry {retries}/{max_retries} for {func.__name__} "
                            f"after {actual_delay:.2f}s due to {type(e).__name__}: {e}"
                        )
                        await asyncio.sleep(actual_delay)
                        delay *= backoff_factor

            return cast(F, async_wrapper)

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            retries = 0
            delay = retry_delay

            while True:
                try:
                    return func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except retry_exceptions as e:
                    retries += 1
                    if retries > max_retries:
                        raise

                    actual_delay = delay * (1 + random.uniform(-jitter, jitter))
                    if on_retry:
                        on_retry(retries, e, actual_delay)

                    logger.warning(
                        f"Retry {retries}/{max_retries} for {func.__name__} "
                        f"after {actual_delay:.2f}s due to {type(e).__name__}: {e}"
                    )
                    time.sleep(actual_delay)
                    delay *= backoff_factor

        return cast(F, sync_wrapper)

    return decorator


def error_response(
    error: Union[ChartIQError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    The ``error``/``message`` pair matches what the practice UI already
    understands; ``code`` and ``retryable`` let it decide whether to offer a
    retry button.
    """
    if not isinstance(error, ChartIQError):
        error = convert_exception(error)

    error_info = error.to_error_info()

    response = {
        "error": True,
        "status": "error",
        "code": error_info.code,
        "message": error_info.message,
        "retryable": error_info.retryable
    }

    if include_details and error_info.details:
        response["details"] = error_info.details

    return response


def log_error(
    error: Union[ChartIQError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to append the current traceback
        context: Additional key/value pairs appended to the message
    """
    if not isinstance(error, ChartIQError):
        error = convert_exception(error)

    message = f"ERROR [{error.code.value}]: {error.message}"

    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message += f" (context: {context_str})"

    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {str(error.cause)}"

    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    logger.log(level, message)
