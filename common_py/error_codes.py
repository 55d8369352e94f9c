"""
Standardized error codes for aweme-sync
"""
from enum import Enum


class ErrorCode(Enum):
    """Standardized error codes"""

    # Retryable errors (1000-1999)
    NETWORK_TIMEOUT = "RETRY_1001"
    NETWORK_TRANSPORT = "RETRY_1002"
    EXTERNAL_API_RATE_LIMIT = "RETRY_1004"
    TEMPORARY_SERVICE_UNAVAILABLE = "RETRY_1005"

    # Fatal errors (2000-2999)
    MISSING_CREDENTIALS = "FATAL_2001"
    MISSING_INPUT_URL = "FATAL_2002"
    AUTHENTICATION_FAILED = "FATAL_2003"
    INVALID_REQUEST = "FATAL_2004"
    INVALID_CONFIGURATION = "FATAL_2005"
    UNSUPPORTED_PLATFORM = "FATAL_2006"
    MALFORMED_RESPONSE = "FATAL_2007"

    # Business logic errors (3000-3999)
    COLUMN_UNAVAILABLE = "BUSINESS_3001"
    UNPARSEABLE_DATE = "BUSINESS_3002"
    TASK_FAILED = "BUSINESS_3003"
    POLL_ATTEMPTS_EXHAUSTED = "BUSINESS_3004"
    NO_MEDIA_SOURCE = "BUSINESS_3005"
    WRITE_CHUNK_FAILED = "BUSINESS_3006"

    @property
    def is_retryable(self) -> bool:
        """Check if error is retryable"""
        return self.value.startswith("RETRY_")

    @property
    def is_fatal(self) -> bool:
        """Check if error is fatal"""
        return self.value.startswith("FATAL_")


def error_code_for_status(status_code: int) -> ErrorCode:
    """Map an HTTP status code from a remote API to an error code."""
    if status_code == 429:
        return ErrorCode.EXTERNAL_API_RATE_LIMIT
    if status_code in (401, 403):
        return ErrorCode.AUTHENTICATION_FAILED
    if status_code >= 500:
        return ErrorCode.TEMPORARY_SERVICE_UNAVAILABLE
    return ErrorCode.INVALID_REQUEST
