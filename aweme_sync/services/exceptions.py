"""Custom exceptions for the aweme-sync service."""

from typing import Optional

from common_py.error_codes import ErrorCode


class AwemeSyncError(Exception):
    """Base exception for aweme-sync service."""

    error_code: ErrorCode = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, aweme_id: Optional[str] = None, table: Optional[str] = None):
        self.aweme_id = aweme_id
        self.table = table
        super().__init__(message)


class ValidationError(AwemeSyncError):
    """Raised when required parameters are missing before any network call."""

    def __init__(self, message: str, field: Optional[str] = None,
                 error_code: ErrorCode = ErrorCode.INVALID_CONFIGURATION):
        self.field = field
        self.error_code = error_code
        super().__init__(message)


class RemoteApiError(AwemeSyncError):
    """Raised when a remote API call fails at the network or status level."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        error_code: ErrorCode = ErrorCode.INVALID_REQUEST,
    ):
        self.endpoint = endpoint
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.error_code.is_retryable


class SchemaError(AwemeSyncError):
    """Raised when a required column cannot be created or resolved."""

    error_code = ErrorCode.COLUMN_UNAVAILABLE

    def __init__(self, message: str, field_name: Optional[str] = None, table: Optional[str] = None):
        self.field_name = field_name
        super().__init__(message, table=table)


class ParseError(AwemeSyncError):
    """Raised when a publish-time value cannot be normalized."""

    error_code = ErrorCode.UNPARSEABLE_DATE

    def __init__(self, message: str, raw_value: object = None, aweme_id: Optional[str] = None):
        self.raw_value = raw_value
        super().__init__(message, aweme_id=aweme_id)


class PipelineItemError(AwemeSyncError):
    """Raised when one item's pipeline stage fails."""

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        stage: Optional[str] = None,
        aweme_id: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.TASK_FAILED,
    ):
        self.record_id = record_id
        self.stage = stage
        self.error_code = error_code
        super().__init__(message, aweme_id=aweme_id)


class BatchWriteError(AwemeSyncError):
    """Raised when a write chunk fails to commit."""

    error_code = ErrorCode.WRITE_CHUNK_FAILED

    def __init__(
        self,
        message: str,
        operation: str,
        chunk_index: int = 0,
        chunk_size: int = 0,
        table: Optional[str] = None,
    ):
        self.operation = operation
        self.chunk_index = chunk_index
        self.chunk_size = chunk_size
        super().__init__(message, table=table)


class InvalidTransitionError(AwemeSyncError):
    """Raised when a processing item is moved along an edge its state machine forbids."""

    def __init__(self, current: str, target: str, aweme_id: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(f"Illegal status transition {current} -> {target}", aweme_id=aweme_id)


class DatastoreConfigurationError(AwemeSyncError):
    """Raised when the configured datastore backend cannot be loaded."""

    error_code = ErrorCode.INVALID_CONFIGURATION

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        super().__init__(message)
