"""
Tests for partnertrace.sms, partnertrace.push and partnertrace.settings.

HTTP transports are exercised against ``httpx.MockTransport``; nothing
leaves the process.
"""

from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs

import httpx
import pytest
from pydantic import ValidationError

from partnertrace.push import (
    HttpPushTrigger,
    LoggingPushTrigger,
    PushConnectionError,
    PushHTTPError,
)
from partnertrace.settings import (
    PushSettings,
    TwilioSettings,
    get_push_settings,
    get_twilio_settings,
)
from partnertrace.sms import (
    LoggingSmsSender,
    SmsConnectionError,
    SmsHTTPError,
    TwilioSmsSender,
)


def _twilio_settings() -> TwilioSettings:
    return TwilioSettings(
        account_sid="AC123",
        auth_token="secret",
        messaging_service_sid="MG456",
    )


def _push_settings() -> PushSettings:
    return PushSettings(function_url="https://functions.example.test/push", function_key="key-1")


@pytest.fixture
def twilio_env(monkeypatch, tmp_path):
    """Complete Twilio environment, run from a directory without a .env file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC1")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "tok")
    monkeypatch.setenv("TWILIO_MESSAGING_SERVICE_SID", "MG1")
    monkeypatch.delenv("TWILIO_TIMEOUT_SECONDS", raising=False)
    monkeypatch.delenv("TWILIO_API_BASE_URL", raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# 1. Settings
# ---------------------------------------------------------------------------

class TestSettings:
    def test_twilio_settings_from_env(self, twilio_env):
        settings = get_twilio_settings()
        assert settings.account_sid == "AC1"
        assert settings.messaging_service_sid == "MG1"
        assert settings.timeout_seconds == 10

    def test_twilio_timeout_from_env(self, twilio_env):
        twilio_env.setenv("TWILIO_TIMEOUT_SECONDS", "2.5")
        assert get_twilio_settings().timeout_seconds == 2.5

    @pytest.mark.parametrize("raw", ["thirty", "0", "-5"])
    def test_malformed_timeout_raises(self, twilio_env, raw):
        twilio_env.setenv("TWILIO_TIMEOUT_SECONDS", raw)
        with pytest.raises(ValidationError):
            get_twilio_settings()

    def test_twilio_settings_missing_token(self, twilio_env):
        twilio_env.delenv("TWILIO_AUTH_TOKEN")
        with pytest.raises(ValidationError):
            get_twilio_settings()

    def test_twilio_settings_empty_token(self, twilio_env):
        twilio_env.setenv("TWILIO_AUTH_TOKEN", "")
        with pytest.raises(ValidationError):
            get_twilio_settings()

    def test_push_settings_from_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PUSH_FUNCTION_URL", "https://example.test/push")
        monkeypatch.setenv("PUSH_FUNCTION_KEY", "k")
        monkeypatch.setenv("PUSH_TIMEOUT_SECONDS", "3")

        settings = get_push_settings()
        assert settings.function_url == "https://example.test/push"
        assert settings.function_key == "k"
        assert settings.timeout_seconds == 3

    def test_push_settings_read_from_dotenv(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        for name in ("PUSH_FUNCTION_URL", "PUSH_FUNCTION_KEY", "PUSH_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        (tmp_path / ".env").write_text(
            "PUSH_FUNCTION_URL=https://example.test/push\nPUSH_FUNCTION_KEY=from-file\n"
        )

        assert get_push_settings().function_key == "from-file"


# ---------------------------------------------------------------------------
# 2. Twilio SMS sender
# ---------------------------------------------------------------------------

class TestTwilioSmsSender:
    def test_posts_form_with_basic_auth(self):
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = parse_qs(request.content.decode())
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(201, json={"sid": "SM789"})

        sender = TwilioSmsSender(_twilio_settings(), transport=httpx.MockTransport(handler))
        sid = sender.send_sms(" +15550100 ", "Health Alert body")

        assert sid == "SM789"
        assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages.json"
        assert captured["form"] == {
            "To": ["+15550100"],
            "MessagingServiceSid": ["MG456"],
            "Body": ["Health Alert body"],
        }
        expected = base64.b64encode(b"AC123:secret").decode()
        assert captured["auth"] == f"Basic {expected}"

    def test_error_status_raises(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To'"})
        )
        sender = TwilioSmsSender(_twilio_settings(), transport=transport)

        with pytest.raises(SmsHTTPError) as exc_info:
            sender.send_sms("+15550100", "body")
        assert exc_info.value.status_code == 400
        assert exc_info.value.body["code"] == 21211

    def test_timeout_raises_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        sender = TwilioSmsSender(_twilio_settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(SmsConnectionError):
            sender.send_sms("+15550100", "body")

    def test_missing_sid_still_truthy(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
        sender = TwilioSmsSender(_twilio_settings(), transport=transport)
        assert sender.send_sms("+15550100", "body") == "sent"

    @pytest.mark.parametrize("phone, body", [("", "body"), ("+15550100", "  ")])
    def test_blank_input_rejected(self, phone, body):
        sender = TwilioSmsSender(_twilio_settings(), transport=httpx.MockTransport(
            lambda request: httpx.Response(201, json={"sid": "SM1"})
        ))
        with pytest.raises(ValueError):
            sender.send_sms(phone, body)

    def test_logging_sender(self):
        sender = LoggingSmsSender()
        assert sender.send_sms("+15550100", "body") is True
        assert sender.sent_count == 1


# ---------------------------------------------------------------------------
# 3. Push trigger
# ---------------------------------------------------------------------------

class TestHttpPushTrigger:
    def test_posts_user_id(self):
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"ok": True})

        trigger = HttpPushTrigger(_push_settings(), transport=httpx.MockTransport(handler))

        assert trigger.trigger_push("user_a") is True
        assert captured["body"] == {"user_id": "user_a"}
        assert captured["auth"] == "Bearer key-1"

    def test_error_status_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
        trigger = HttpPushTrigger(_push_settings(), transport=transport)

        with pytest.raises(PushHTTPError) as exc_info:
            trigger.trigger_push("user_a")
        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "unavailable"

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        trigger = HttpPushTrigger(_push_settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(PushConnectionError):
            trigger.trigger_push("user_a")

    def test_logging_trigger(self):
        trigger = LoggingPushTrigger()
        trigger.trigger_push("user_a")
        assert trigger.triggered == ["user_a"]
