"""Operator notification channels: local jsonl log, Resend email, plain logging."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

import httpx

from utils.exceptions import ConfigurationError, NotificationError


logger = logging.getLogger(__name__)


class Notifier(ABC):
    channel: str = "base"

    @abstractmethod
    def send(self, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        """Deliver one message. Raises NotificationError on failure."""


class JsonlNotifier(Notifier):
    """Appends each message to ``notifications.jsonl`` under ``out_dir``."""

    channel = "jsonl"

    def __init__(self, out_dir: Union[str, Path]) -> None:
        self.out_dir = Path(out_dir)

    @property
    def log_path(self) -> Path:
        return self.out_dir / "notifications.jsonl"

    def send(self, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        entry = {
            "channel": "send_email",
            "payload": {"to": str(recipient), "subject": str(subject), "body": str(body)},
            "sent_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "status": "ok",
        }
        try:
            self.out_dir.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as exc:
            raise NotificationError(f"Cannot write notification log: {exc}", channel=self.channel) from exc
        entry["log_path"] = str(self.log_path)
        return entry


class ResendEmailNotifier(Notifier):
    """Sends email through the Resend HTTP API."""

    channel = "resend"

    def __init__(
        self,
        api_key: Optional[str],
        *,
        from_address: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ConfigurationError("NOTIFY_RESEND_API_KEY is required for the resend channel")
        self.api_key = api_key
        self.from_address = from_address
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        payload = {"from": self.from_address, "to": [recipient], "subject": subject, "text": body}
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url}/emails", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Email request failed: {exc}", channel=self.channel) from exc
        if response.status_code >= 400:
            raise NotificationError(
                f"Email provider returned HTTP {response.status_code}",
                channel=self.channel,
                body=response.text[:300],
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        return {"channel": self.channel, "id": data.get("id"), "status": "ok"}


class LogNotifier(Notifier):
    channel = "log"

    def send(self, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        logger.warning(f"[Notify] to={recipient} subject={subject}\n{body}")
        return {"channel": self.channel, "status": "ok"}


def get_notifier(settings=None) -> Notifier:
    """Build the configured notifier."""
    if settings is None:
        from config import get_notification_settings
        settings = get_notification_settings()

    channel = str(settings.channel or "jsonl").strip().lower()
    if channel == "jsonl":
        return JsonlNotifier(settings.out_dir)
    if channel == "resend":
        return ResendEmailNotifier(
            settings.resend_api_key,
            from_address=settings.from_address,
            base_url=settings.resend_base_url,
            timeout=settings.request_timeout,
        )
    if channel == "log":
        return LogNotifier()
    raise ConfigurationError(f"Unknown notification channel: {settings.channel}")


def safe_send(notifier: Optional[Notifier], recipient: str, subject: str, body: str) -> bool:
    """Send and report success; delivery failures are logged, never raised."""
    if notifier is None:
        return False
    try:
        notifier.send(recipient, subject, body)
        return True
    except Exception as exc:
        logger.error(f"[Notify] Delivery via {notifier.channel} failed: {exc}")
        return False
