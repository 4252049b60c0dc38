"""
Configuration Management Module
Environment-driven settings for every pipeline concern.
"""
from .settings import (
    Settings,
    get_settings,
    get_youtube_settings,
    get_llm_settings,
    get_curation_settings,
    get_recovery_settings,
    get_notification_settings,
    get_storage_settings,
    get_learning_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_youtube_settings",
    "get_llm_settings",
    "get_curation_settings",
    "get_recovery_settings",
    "get_notification_settings",
    "get_storage_settings",
    "get_learning_settings",
]
