"""
Custom exceptions for the record transform pipeline.
Provides structured error handling with rich context for debugging and monitoring.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from enum import Enum


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for routing and handling."""
    VALIDATION = "validation"
    PARSE = "parse"
    AWS_SERVICE = "aws_service"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Rich context for error tracking and debugging."""
    correlation_id: Optional[str] = None
    field_name: Optional[str] = None
    expected_type: Optional[str] = None
    actual_value: Optional[Any] = None
    s3_bucket: Optional[str] = None
    s3_key: Optional[str] = None
    destination_key: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    additional_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert context to dictionary for logging."""
        return {
            "correlation_id": self.correlation_id,
            "field_name": self.field_name,
            "expected_type": self.expected_type,
            "actual_value": str(self.actual_value) if self.actual_value is not None else None,
            "s3_bucket": self.s3_bucket,
            "s3_key": self.s3_key,
            "destination_key": self.destination_key,
            "timestamp": self.timestamp,
            **self.additional_data,
        }


class RecordProcessingError(Exception):
    """Base exception for all record processing errors."""

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.PARSE,
        retryable: bool = False,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception

    def to_dict(self) -> dict:
        """Serialize exception for logging and monitoring."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "original_exception": str(self.original_exception) if self.original_exception else None,
        }


class EventValidationError(RecordProcessingError):
    """Raised when the trigger notification does not have the expected shape."""

    def __init__(
        self,
        message: str,
        field_name: str,
        expected: str,
        actual: Any = None,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.field_name = field_name
        ctx.expected_type = expected
        ctx.actual_value = actual

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.VALIDATION,
            retryable=False,
            original_exception=original_exception,
        )
        self.field_name = field_name
        self.expected = expected
        self.actual = actual


class RecordParseError(RecordProcessingError):
    """Raised when a source object is not a structured JSON document."""

    def __init__(
        self,
        message: str,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        expected: str = "JSON object",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.s3_bucket = bucket
        ctx.s3_key = key
        ctx.expected_type = expected

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.PARSE,
            retryable=False,
            original_exception=original_exception,
        )
        self.bucket = bucket
        self.key = key


class AWSServiceError(RecordProcessingError):
    """Raised when AWS service calls fail."""

    def __init__(
        self,
        message: str,
        service_name: str,
        operation: str,
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["aws_service"] = service_name
        ctx.additional_data["operation"] = operation

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.AWS_SERVICE,
            retryable=True,
            original_exception=original_exception,
        )
        self.service_name = service_name
        self.operation = operation


class S3Error(AWSServiceError):
    """Raised when S3 operations fail."""

    def __init__(
        self,
        message: str,
        bucket: str,
        key: str,
        operation: str = "GetObject",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.s3_bucket = bucket
        ctx.s3_key = key

        super().__init__(
            message=message,
            service_name="S3",
            operation=operation,
            context=ctx,
            original_exception=original_exception,
        )
        self.bucket = bucket
        self.key = key


class CatalogError(AWSServiceError):
    """Raised when Glue crawler operations fail."""

    def __init__(
        self,
        message: str,
        crawler_name: str,
        operation: str = "StartCrawler",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["crawler_name"] = crawler_name

        super().__init__(
            message=message,
            service_name="Glue",
            operation=operation,
            context=ctx,
            original_exception=original_exception,
        )
        self.crawler_name = crawler_name


class QueryError(AWSServiceError):
    """Raised when an Athena query cannot be run or does not succeed."""

    def __init__(
        self,
        message: str,
        query_execution_id: Optional[str] = None,
        state: Optional[str] = None,
        operation: str = "StartQueryExecution",
        context: Optional[ErrorContext] = None,
        original_exception: Optional[Exception] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["query_execution_id"] = query_execution_id
        ctx.additional_data["query_state"] = state

        super().__init__(
            message=message,
            service_name="Athena",
            operation=operation,
            context=ctx,
            original_exception=original_exception,
        )
        self.query_execution_id = query_execution_id
        self.state = state


class ConfigurationError(RecordProcessingError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: str,
        context: Optional[ErrorContext] = None,
    ):
        ctx = context or ErrorContext()
        ctx.additional_data["config_key"] = config_key

        super().__init__(
            message=message,
            context=ctx,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )
        self.config_key = config_key
