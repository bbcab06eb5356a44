"""Error taxonomy for the attachment sync pipeline."""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .models import Result

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Error codes shared by providers, handlers and the API."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    MISSING_CONFIG = "MISSING_CONFIG"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    DELETE_FAILED = "DELETE_FAILED"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    RECONCILIATION_MISS = "RECONCILIATION_MISS"
    ENCODING_AMBIGUITY = "ENCODING_AMBIGUITY"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class SyncError(Exception):
    """Base error carrying a code and optional details."""

    code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigInvalid(SyncError):
    """Storage credentials or bucket settings are missing or unusable."""

    code = ErrorCode.INVALID_CONFIG


class NetworkFailure(SyncError):
    """Transport or HTTP error from a provider or a download."""

    code = ErrorCode.NETWORK_ERROR


class ReconciliationMiss(SyncError):
    """The target link or marker is no longer in the document."""

    code = ErrorCode.RECONCILIATION_MISS


class EncodingAmbiguity(SyncError):
    """A percent-encoded key could not be decoded."""

    code = ErrorCode.ENCODING_AMBIGUITY


def handle_error(error: BaseException, context: str = "") -> Result:
    """Turn an exception into a failed Result.

    Args:
        error: The exception raised by a provider call
        context: Short description of the operation, prefixed to the message

    Returns:
        Failed Result whose error reads "<context>: <message>"
    """
    message = str(error) or error.__class__.__name__
    logger.error(f"{context or 'Error'}: {message}")
    return Result.fail(f"{context}: {message}" if context else message)
