"""
Custom Exceptions
Error taxonomy for the curation pipeline.
"""
from datetime import datetime
from typing import Optional


class CurationError(Exception):
    """Base error for the curation pipeline"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CurationError):
    """Configuration error"""
    pass


class QuotaExceededError(CurationError):
    """External source quota is exhausted (or predicted to be)."""

    def __init__(
        self,
        message: str,
        call_type: str = None,
        reset_at: Optional[datetime] = None,
        **kwargs,
    ):
        super().__init__(message, kwargs)
        self.call_type = call_type
        self.reset_at = reset_at


class SourceError(CurationError):
    """Transient external source error"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class StorageError(CurationError):
    """Persistence error"""
    pass


class RunStateError(CurationError):
    """Illegal run state transition or unknown run"""

    def __init__(self, message: str, run_id: str = None, status: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.run_id = run_id
        self.status = status


class RunSlotBusyError(RunStateError):
    """Another curation run holds the advisory run slot"""
    pass


class LLMError(CurationError):
    """LLM call error"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class NotificationError(CurationError):
    """Notification delivery error"""

    def __init__(self, message: str, channel: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.channel = channel
