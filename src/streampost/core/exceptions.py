"""
Custom exception classes for the streampost bridge.

Every failure that can end an invocation maps to one of these types so the
orchestrator can report it once and callers can branch on the class.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class StreamPostException(Exception):
    """Base exception class for all streampost exceptions."""

    pass


class ConfigurationError(StreamPostException):
    """Raised when a required setting is missing at first use."""

    def __init__(self, setting: str, env_var: Optional[str] = None):
        self.setting = setting
        self.env_var = env_var
        message = f"Missing required setting {setting!r}"
        if env_var:
            message += f" (set {env_var})"
        super().__init__(message)


class AuthError(StreamPostException):
    """Raised when a bearer token cannot be acquired."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message)


class SchemaLoadError(StreamPostException):
    """Raised when the schema cannot be fetched or parsed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message)


class DecodeError(StreamPostException):
    """
    Raised when a raw record's payload cannot be decoded.

    Carries the position of the offending record in its batch and, when the
    stream source provided one, its sequence number.

    Example:
        >>> raise DecodeError("Malformed Avro payload", index=3, sequence_number="4962")
    """

    def __init__(
        self,
        reason: str,
        *,
        index: Optional[int] = None,
        sequence_number: Optional[str] = None,
    ):
        self.reason = reason
        self.index = index
        self.sequence_number = sequence_number
        details = {}
        if index is not None:
            details["index"] = index
        if sequence_number is not None:
            details["sequence_number"] = sequence_number
        message = reason
        if details:
            message += f" - {details}"
        super().__init__(message)


class DeliveryError(StreamPostException):
    """Base class for failed batch deliveries."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"{message} (status={status_code})"
        super().__init__(message)


class TransportError(DeliveryError):
    """Raised for network failures and non-auth HTTP error statuses."""

    pass


class AuthExpiredError(DeliveryError):
    """Raised when the delivery endpoint rejects the bearer token."""

    pass


class PartialDataError(StreamPostException):
    """
    Item-level errors reported by the delivery endpoint on an accepted batch.

    Non-fatal: it is attached to the delivery outcome and logged, never raised
    out of an invocation.
    """

    def __init__(self, errors: List[Any]):
        self.errors = list(errors)
        super().__init__(f"Delivery endpoint reported {len(self.errors)} data error(s)")


class EmptyBatchError(StreamPostException):
    """Raised when an invocation carries no records and the policy is FAIL."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.details = details or {}
        message = f"{reason}"
        if self.details:
            message += f" - {self.details}"
        super().__init__(message)


class EmptyBatchPolicy(Enum):
    """Policy for invocations that arrive with zero records."""

    FAIL = "fail"              # Raise EmptyBatchError
    WARN = "warn"              # Log warning and continue (default)
    ALLOW = "allow"            # Continue silently


class EmptyBatchHandler:
    """
    Handles empty batches based on configured policy.

    Usage:
        >>> handler = EmptyBatchHandler(policy=EmptyBatchPolicy.FAIL)
        >>> handler.handle(reason="No records in invocation")
        # Raises EmptyBatchError

        >>> handler = EmptyBatchHandler(policy=EmptyBatchPolicy.WARN, logger=log)
        >>> handler.handle(reason="No records in invocation")
        # Logs warning and returns True (continue processing)
    """

    def __init__(
        self,
        policy: EmptyBatchPolicy = EmptyBatchPolicy.WARN,
        logger: Optional[Any] = None,
    ):
        self.policy = policy
        self.logger = logger

    def handle(self, reason: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Handle an empty batch based on policy.

        Returns:
            True if processing should continue.

        Raises:
            EmptyBatchError: If policy is FAIL
        """
        details = details or {}

        if self.policy == EmptyBatchPolicy.FAIL:
            raise EmptyBatchError(reason=reason, details=details)

        if self.policy == EmptyBatchPolicy.WARN and self.logger is not None:
            self.logger.warning(f"{reason}: {details}")

        return True
