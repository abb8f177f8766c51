"""Error handling and exception management for the WaterCrawl client."""

import traceback
from enum import Enum
from typing import Any, Dict, Optional, List, Union
from dataclasses import dataclass, field
from datetime import datetime

from .logging import get_logger


class ErrorCategory(str, Enum):
    """Categories of errors that can occur in the client."""
    VALIDATION = "validation"
    API = "api"
    NETWORK = "network"
    DECODE = "decode"
    STREAM = "stream"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for error handling."""
    operation: str
    url: Optional[str] = None
    job_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "operation": self.operation,
            "url": self.url,
            "job_id": self.job_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None
        }


@dataclass
class ErrorInfo:
    """Detailed error information."""
    error_type: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    context: Optional[ErrorContext] = None
    traceback: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    retryable: bool = False


class WaterCrawlError(Exception):
    """Base exception class for all WaterCrawl client errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_code = error_code
        self.details = details
        self.context = context
        self.retryable = retryable
        self.timestamp = datetime.utcnow()

    def _add_detail(self, key: str, value: Any) -> None:
        if self.details is None:
            self.details = {}
        self.details[key] = value

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo."""
        return ErrorInfo(
            error_type=self.__class__.__name__,
            message=str(self),
            category=self.category,
            severity=self.severity,
            code=self.error_code,
            details=self.details or {},
            context=self.context,
            traceback=traceback.format_exc(),
            timestamp=self.timestamp,
            retryable=self.retryable
        )


class ValidationError(WaterCrawlError):
    """Error raised when input validation fails, before any request is sent."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            error_code="VALIDATION_ERROR",
            retryable=False,
            **kwargs
        )
        self.field = field
        if field:
            self._add_detail("field", field)

    def __str__(self) -> str:
        if self.field:
            return f"validation error: {self.field}: {self.message}"
        return f"validation error: {self.message}"


class APIError(WaterCrawlError):
    """Error raised for any non-2xx response from the API."""

    def __init__(self, message: str, status_code: int, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.API,
            severity=ErrorSeverity.MEDIUM,
            error_code="API_ERROR",
            retryable=status_code in (408, 429, 500, 502, 503, 504),
            **kwargs
        )
        self.status_code = status_code
        self._add_detail("status_code", status_code)

    def __str__(self) -> str:
        return f"API error (status {self.status_code}): {self.message}"


class TimeoutError(WaterCrawlError):
    """Error raised when a bounded sub-operation exceeds its budget."""

    def __init__(
        self,
        message: str,
        operation: str,
        timeout_duration: Optional[float] = None,
        **kwargs
    ):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.MEDIUM,
            error_code="TIMEOUT_ERROR",
            retryable=True,
            **kwargs
        )
        self.operation = operation
        self.timeout_duration = timeout_duration
        self._add_detail("operation", operation)
        if timeout_duration:
            self._add_detail("timeout_duration", timeout_duration)

    def __str__(self) -> str:
        return f"timeout error during {self.operation}: {self.message}"


class NetworkError(WaterCrawlError):
    """Error raised when the connection to the API cannot be used."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            error_code="NETWORK_ERROR",
            retryable=True,
            **kwargs
        )
        self.url = url
        if url:
            self._add_detail("url", url)


class DecodeError(WaterCrawlError):
    """Error raised when a response body cannot be interpreted."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.DECODE,
            severity=ErrorSeverity.MEDIUM,
            error_code="DECODE_ERROR",
            retryable=False,
            **kwargs
        )


class StreamError(WaterCrawlError):
    """Error raised when an open event stream fails while being read."""

    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.STREAM,
            severity=ErrorSeverity.MEDIUM,
            error_code="STREAM_ERROR",
            retryable=True,
            **kwargs
        )
        self.job_id = job_id
        if job_id:
            self._add_detail("job_id", job_id)


class ConfigurationError(WaterCrawlError):
    """Error raised when configuration is invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            error_code="CONFIGURATION_ERROR",
            retryable=False,
            **kwargs
        )
        if config_key:
            self._add_detail("config_key", config_key)


class ErrorHandler:
    """Centralized error tracking and logging."""

    def __init__(self, max_recent_errors: int = 100):
        self.error_count: int = 0
        self.recent_errors: List[Dict[str, Any]] = []
        self.max_recent_errors = max_recent_errors
        self.error_counts: Dict[str, int] = {}

    def handle_error(
        self,
        error: Union[Exception, ErrorInfo],
        context: Optional[ErrorContext] = None
    ) -> ErrorInfo:
        """Handle and categorize an error.

        Args:
            error: Exception or ErrorInfo to handle
            context: Optional error context

        Returns:
            ErrorInfo with details
        """
        if isinstance(error, ErrorInfo):
            error_info = error
        elif isinstance(error, WaterCrawlError):
            error_info = error.to_error_info()
            if context and not error_info.context:
                error_info.context = context
        else:
            error_info = self._categorize_generic_error(error, context)

        self._track_error(error_info)
        self._log_error(error_info)

        return error_info

    def _categorize_generic_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> ErrorInfo:
        """Categorize a generic exception."""
        error_type = error.__class__.__name__
        message = str(error)

        category = ErrorCategory.SYSTEM
        severity = ErrorSeverity.MEDIUM
        retryable = False

        if "timeout" in message.lower() or "Timeout" in error_type:
            category = ErrorCategory.TIMEOUT
            retryable = True
        elif "connect" in message.lower() or "ConnectError" in error_type:
            category = ErrorCategory.NETWORK
            retryable = True
        elif "JSONDecodeError" in error_type:
            category = ErrorCategory.DECODE
        elif "ValueError" in error_type:
            category = ErrorCategory.VALIDATION
            severity = ErrorSeverity.LOW

        return ErrorInfo(
            error_type=error_type,
            message=message,
            category=category,
            severity=severity,
            context=context,
            traceback=traceback.format_exc(),
            retryable=retryable
        )

    def _track_error(self, error_info: ErrorInfo) -> None:
        """Track error occurrences."""
        self.error_count += 1

        error_record = {
            "error_type": error_info.error_type,
            "message": error_info.message,
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "context": error_info.context.to_dict() if error_info.context else None,
            "timestamp": error_info.timestamp.isoformat(),
            "retryable": error_info.retryable,
        }

        self.recent_errors.insert(0, error_record)
        if len(self.recent_errors) > self.max_recent_errors:
            self.recent_errors = self.recent_errors[:self.max_recent_errors]

        error_key = f"{error_info.category.value}:{error_info.error_type}"
        self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1

    def _log_error(self, error_info: ErrorInfo) -> None:
        """Log error based on severity."""
        logger = get_logger(__name__)
        log_message = f"{error_info.error_type}: {error_info.message}"

        if error_info.context:
            context_info = f" (operation: {error_info.context.operation}"
            if error_info.context.url:
                context_info += f", url: {error_info.context.url}"
            if error_info.context.job_id:
                context_info += f", job: {error_info.context.job_id}"
            context_info += ")"
            log_message += context_info

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message, extra={"error_info": error_info})
        elif error_info.severity in (ErrorSeverity.HIGH, ErrorSeverity.MEDIUM):
            logger.error(log_message, extra={"error_info": error_info})
        else:
            logger.info(log_message, extra={"error_info": error_info})

        if error_info.traceback and error_info.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            logger.debug(f"Traceback for {error_info.error_type}:\n{error_info.traceback}")

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics grouped by type and operation."""
        error_types: Dict[str, int] = {}
        operations: Dict[str, int] = {}

        for error_record in self.recent_errors:
            error_type = error_record["error_type"]
            error_types[error_type] = error_types.get(error_type, 0) + 1

            if error_record["context"] and error_record["context"]["operation"]:
                operation = error_record["context"]["operation"]
                operations[operation] = operations.get(operation, 0) + 1

        return {
            "total_errors": self.error_count,
            "error_types": error_types,
            "operations": operations,
            "error_counts": dict(self.error_counts),
        }

    def clear_errors(self) -> None:
        """Clear error history."""
        self.error_count = 0
        self.recent_errors.clear()
        self.error_counts.clear()


# Global error handler instance
_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler


def handle_error(
    error: Union[Exception, ErrorInfo, str],
    context: Optional[ErrorContext] = None
) -> ErrorInfo:
    """Convenience function to handle an error."""
    if isinstance(error, str):
        error = WaterCrawlError(error)

    if context is None:
        context = ErrorContext(operation="unknown")

    return get_error_handler().handle_error(error, context)
