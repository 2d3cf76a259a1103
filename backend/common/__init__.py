"""
Common Components for ChartIQ

This package contains the infrastructure shared by the practice modules.

Key components:
1. Logging - Centralized logging configuration
2. Error Handling - Error taxonomy, retry and structured error payloads
3. Serialization - Dataclass to JSON conversion for the API layer
"""

# Initialize logging
from backend.common.logger import app_logger, get_logger, log_execution_time

from backend.common.error_handling import (
    ErrorCode, ErrorSeverity, ChartIQError, DataUnavailableError, RequestTimeoutError,
    EmptySubmissionError, InvalidToolStateError, InvalidTransitionError,
    error_response, log_error, retry
)

from backend.common.serialization import SerializableMixin, serialize, to_json

__all__ = [
    # Logging
    'app_logger', 'get_logger', 'log_execution_time',

    # Errors
    'ErrorCode', 'ErrorSeverity', 'ChartIQError', 'DataUnavailableError', 'RequestTimeoutError',
    'EmptySubmissionError', 'InvalidToolStateError', 'InvalidTransitionError',
    'error_response', 'log_error', 'retry',

    # Serialization
    'SerializableMixin', 'serialize', 'to_json',
]
