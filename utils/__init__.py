"""
Utils Module
Logging setup and exception taxonomy
"""
from .logger import setup_logger, get_logger
from .exceptions import (
    CurationError,
    ConfigurationError,
    QuotaExceededError,
    SourceError,
    StorageError,
    RunStateError,
    RunSlotBusyError,
    LLMError,
    NotificationError,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "CurationError",
    "ConfigurationError",
    "QuotaExceededError",
    "SourceError",
    "StorageError",
    "RunStateError",
    "RunSlotBusyError",
    "LLMError",
    "NotificationError",
]
