"""
Common exception types and error classification for kafka_tail.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for consume errors
- Error classification utilities
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that may succeed on retry
                   (e.g., leader not available, request timeouts)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., unknown topic, invalid configuration)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """
    Base exception for all kafka_tail errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Transient Errors
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class OffsetProbeTimeoutError(TransientError):
    """High watermark probe did not succeed before its deadline."""

    def __init__(
        self,
        topic: str,
        partition: int,
        attempts: int,
        cause: Optional[Exception] = None,
    ):
        message = (
            f"Unable to get available offsets for {topic}/{partition} "
            f"after {attempts} attempt(s)"
        )
        if cause is None:
            message += ": timed out"
        super().__init__(
            message,
            cause,
            {"topic": topic, "partition": partition, "attempts": attempts},
        )
        self.topic = topic
        self.partition = partition
        self.attempts = attempts


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid configuration or consume request."""

    pass


class TopicNotFoundError(PermanentError):
    """Topic does not exist on the cluster."""

    def __init__(self, topic: str, cause: Optional[Exception] = None):
        super().__init__(f"Topic '{topic}' not found", cause, {"topic": topic})
        self.topic = topic


class PartitionAttachError(PermanentError):
    """Could not attach a fetch stream to a partition."""

    def __init__(self, topic: str, partition: int, cause: Optional[Exception] = None):
        super().__init__(
            f"Unable to consume partition {topic}/{partition}",
            cause,
            {"topic": topic, "partition": partition},
        )
        self.topic = topic
        self.partition = partition


# =============================================================================
# Per-record Errors (recovered locally)
# =============================================================================


class SchemaDecodeError(PipelineError):
    """Payload bytes could not be decoded with the registered schema."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, PipelineError):
        return exc.category

    # aiokafka marks broker-side retriable errors explicitly
    if getattr(exc, "retriable", False):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "no route to host",
        "name resolution",
        "leadernotavailable",
        "notleaderforpartition",
        "broken pipe",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    permanent_markers = (
        "unknowntopic",
        "topicauthorization",
        "authentication",
        "invalid",
    )
    if any(m in exc_type or m in exc_str for m in permanent_markers):
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def is_retryable(exc: Exception) -> bool:
    """
    Whether an operation that raised exc should be attempted again.

    Transient and unclassified errors are retried; permanent ones are not.
    """
    return classify_exception(exc) != ErrorCategory.PERMANENT


__all__ = [
    "ErrorCategory",
    "PipelineError",
    "TransientError",
    "OffsetProbeTimeoutError",
    "PermanentError",
    "ConfigurationError",
    "TopicNotFoundError",
    "PartitionAttachError",
    "SchemaDecodeError",
    "classify_exception",
    "is_retryable",
]
