"""
Cache Exceptions

Error taxonomy for the tagged cache backend.
Validation errors are raised before any store call; store errors
always chain the original client exception.
"""

from typing import Optional, Any, Dict, List


class CacheException(Exception):
    """Base exception for tagged cache errors.

    Carries a machine readable error code and structured details
    alongside the human readable message.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(CacheException, ValueError):
    """Raised when caller supplied input cannot be encoded into an entry."""


class InvalidArgumentError(InvalidInputError):
    """Raised when an identifier or tag is not a valid string."""

    def __init__(self, argument: str, value: Any, reason: Optional[str] = None):
        message = reason or (
            f'The specified {argument} is of type "{type(value).__name__}" '
            "but a string is expected."
        )
        super().__init__(
            message=message,
            error_code="CACHE_INVALID_ARGUMENT",
            details={"argument": argument, "value_type": type(value).__name__},
        )


class InvalidDataError(InvalidInputError):
    """Raised when a payload is not a byte string."""

    def __init__(self, value: Any):
        super().__init__(
            message=(
                f'The specified data is of type "{type(value).__name__}" '
                "but a byte string is expected."
            ),
            error_code="CACHE_INVALID_DATA",
            details={"value_type": type(value).__name__},
        )


class CacheConfigurationError(CacheException):
    """Raised when backend configuration or options are invalid."""

    def __init__(
        self,
        message: str,
        option: Optional[str] = None,
        value: Optional[Any] = None,
    ):
        details = {}
        if option:
            details["option"] = option
        if value is not None:
            details["value"] = str(value)

        super().__init__(
            message=message, error_code="CACHE_CONFIGURATION_ERROR", details=details
        )


class StoreException(CacheException):
    """Base exception for failures reported by a store gateway."""


class StoreUnavailableError(StoreException):
    """Raised when the store cannot be reached or does not answer in time."""

    def __init__(
        self,
        message: str = "Cache store unavailable",
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="CACHE_STORE_UNAVAILABLE", details=details
        )
        if original_error:
            self.__cause__ = original_error


class StoreCircuitOpenError(StoreUnavailableError):
    """Raised when the gateway circuit breaker rejects a call."""

    def __init__(self, message: str = "Store circuit breaker is open"):
        super().__init__(message=message)
        self.error_code = "CACHE_STORE_CIRCUIT_OPEN"
        self.details["service_status"] = "unavailable"


class StoreOperationError(StoreException):
    """Raised when the store answers with an unexpected response."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code
        if body:
            details["body"] = body[:500]

        super().__init__(
            message=message, error_code="CACHE_STORE_OPERATION_ERROR", details=details
        )


class IndexesNotSupportedError(StoreOperationError):
    """Raised when the store's storage engine has no secondary index support."""

    def __init__(self, bucket: str, index_name: str):
        super().__init__(
            message=(
                f"Secondary indexes are not supported for bucket {bucket!r} "
                f"(queried {index_name!r}); a LevelDB or memory backend is required"
            ),
            operation="query_index",
        )
        self.error_code = "CACHE_INDEXES_NOT_SUPPORTED"
        self.details.update({"bucket": bucket, "index_name": index_name})


class BulkDeletionError(CacheException):
    """Raised after a bulk operation finished with some deletions failing.

    All matched keys were attempted; ``failed_keys`` maps each key that
    could not be deleted to the error message reported for it.
    """

    def __init__(self, operation: str, failed_keys: Dict[str, str], attempted: int):
        self.operation = operation
        self.failed_keys = failed_keys
        self.attempted = attempted
        super().__init__(
            message=(
                f"{operation} could not delete {len(failed_keys)} "
                f"of {attempted} matched entries"
            ),
            error_code="CACHE_BULK_DELETION_FAILED",
            details={
                "operation": operation,
                "failed_keys": sorted(failed_keys),
                "attempted": attempted,
            },
        )

    @property
    def keys(self) -> List[str]:
        """Keys whose deletion failed."""
        return sorted(self.failed_keys)
