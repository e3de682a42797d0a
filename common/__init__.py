"""Common utilities for ContestRadar."""

from common.email import send_email
from common.errors import ErrorType, FetchError, PipelineError, StorageError

__all__ = [
    "send_email",
    "ErrorType",
    "FetchError",
    "PipelineError",
    "StorageError",
]
