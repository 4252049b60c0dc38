"""Operator notifications."""

from .channels import (
    JsonlNotifier,
    LogNotifier,
    Notifier,
    ResendEmailNotifier,
    get_notifier,
    safe_send,
)


__all__ = [
    "JsonlNotifier",
    "LogNotifier",
    "Notifier",
    "ResendEmailNotifier",
    "get_notifier",
    "safe_send",
]
