from __future__ import annotations

import json

import httpx
import pytest

from config.settings import (
    CurationSettings,
    NotificationSettings,
    Settings,
    StorageSettings,
    YouTubeSettings,
)
from notifications import JsonlNotifier, LogNotifier, ResendEmailNotifier, get_notifier, safe_send
from notifications import channels
from utils.exceptions import ConfigurationError, NotificationError


# ---- settings ----------------------------------------------------------------


def test_settings_defaults() -> None:
    curation = CurationSettings()
    assert curation.min_duration_seconds == 120
    assert curation.acceptance_threshold == 71.0
    assert curation.inter_call_delay_seconds == 2.0
    assert YouTubeSettings().quota_safety_ratio == 0.95
    assert StorageSettings().database_url == "sqlite:///data/curation.db"


def test_settings_read_prefixed_env(monkeypatch) -> None:
    monkeypatch.setenv("CURATION_MAX_SEARCHES", "3")
    monkeypatch.setenv("CURATION_QUERIES", '["armbar escapes", "kimura trap"]')
    monkeypatch.setenv("YOUTUBE_API_KEY", "yt-key")
    monkeypatch.setenv("NOTIFY_CHANNEL", "log")

    assert CurationSettings().max_searches == 3
    assert CurationSettings().queries == ["armbar escapes", "kimura trap"]
    assert YouTubeSettings().api_key == "yt-key"
    assert NotificationSettings().channel == "log"


def test_load_from_env_file(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("RECOVERY_STUCK_THRESHOLD_HOURS", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("RECOVERY_STUCK_THRESHOLD_HOURS=4\n", encoding="utf-8")

    settings = Settings.load_from_env_file(env_file)

    assert settings.recovery.stuck_threshold_hours == 4.0
    assert settings.learning.skip_rate_alert == 15.0


# ---- notifications -----------------------------------------------------------


class _Response:
    def __init__(self, status_code: int, payload=None) -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.text = json.dumps(self._payload)

    def json(self):
        return self._payload


class _Client:
    calls = []
    response = _Response(200, {"id": "email_123"})

    def __init__(self, *args, **kwargs) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def post(self, url, json=None, headers=None):
        _Client.calls.append((url, json, headers))
        if isinstance(_Client.response, Exception):
            raise _Client.response
        return _Client.response


def test_jsonl_notifier_appends_entries(tmp_path) -> None:
    notifier = JsonlNotifier(tmp_path / "out")

    notifier.send("ops@example.com", "Recovered 1 run", "run_1 was stuck")
    result = notifier.send("ops@example.com", "Second", "body")

    lines = (tmp_path / "out" / "notifications.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["channel"] == "send_email"
    assert first["payload"] == {"to": "ops@example.com", "subject": "Recovered 1 run", "body": "run_1 was stuck"}
    assert result["log_path"].endswith("notifications.jsonl")


def test_resend_notifier_posts_email(monkeypatch) -> None:
    _Client.calls = []
    _Client.response = _Response(200, {"id": "email_123"})
    monkeypatch.setattr(channels.httpx, "Client", _Client)
    notifier = ResendEmailNotifier("re_key", from_address="curation@example.com")

    result = notifier.send("ops@example.com", "Alert", "BAD rate above 5%")

    url, payload, headers = _Client.calls[0]
    assert url == "https://api.resend.com/emails"
    assert payload["to"] == ["ops@example.com"]
    assert headers["Authorization"] == "Bearer re_key"
    assert result["id"] == "email_123"


def test_resend_notifier_errors(monkeypatch) -> None:
    monkeypatch.setattr(channels.httpx, "Client", _Client)
    notifier = ResendEmailNotifier("re_key", from_address="curation@example.com")

    _Client.response = _Response(422, {"message": "invalid to"})
    with pytest.raises(NotificationError):
        notifier.send("not-an-email", "Alert", "body")

    _Client.response = httpx.ConnectError("refused")
    with pytest.raises(NotificationError):
        notifier.send("ops@example.com", "Alert", "body")

    with pytest.raises(ConfigurationError):
        ResendEmailNotifier(None, from_address="curation@example.com")


def test_get_notifier_by_channel(tmp_path) -> None:
    assert isinstance(get_notifier(NotificationSettings(channel="jsonl", out_dir=str(tmp_path))), JsonlNotifier)
    assert isinstance(get_notifier(NotificationSettings(channel="LOG")), LogNotifier)
    with pytest.raises(ConfigurationError):
        get_notifier(NotificationSettings(channel="pigeon"))


def test_safe_send_swallows_delivery_errors(tmp_path) -> None:
    blocked = tmp_path / "blocked"
    blocked.write_text("not a directory", encoding="utf-8")

    assert safe_send(JsonlNotifier(blocked), "ops@example.com", "s", "b") is False
    assert safe_send(None, "ops@example.com", "s", "b") is False
    assert safe_send(LogNotifier(), "ops@example.com", "s", "b") is True
