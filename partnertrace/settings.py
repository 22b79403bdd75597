"""
Environment-backed settings for the outbound transports (SMS and push).

Credentials never live in YAML alongside the condition table.  They are read
from the environment (or a local ``.env`` file) when a transport is
constructed.  Missing or malformed values raise ``pydantic.ValidationError``
instead of falling back silently.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TwilioSettings(BaseSettings):
    """Twilio Messages API credentials.

    Environment variables: ``TWILIO_ACCOUNT_SID``, ``TWILIO_AUTH_TOKEN``,
    ``TWILIO_MESSAGING_SERVICE_SID`` (required), ``TWILIO_TIMEOUT_SECONDS``,
    ``TWILIO_API_BASE_URL``.
    """

    account_sid: str = Field(..., min_length=1)
    auth_token: str = Field(..., min_length=1)
    messaging_service_sid: str = Field(..., min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    api_base_url: str = "https://api.twilio.com/2010-04-01"

    model_config = SettingsConfigDict(
        env_prefix="TWILIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class PushSettings(BaseSettings):
    """Endpoint of the push-notification function.

    Environment variables: ``PUSH_FUNCTION_URL``, ``PUSH_FUNCTION_KEY``
    (required), ``PUSH_TIMEOUT_SECONDS``.
    """

    function_url: str = Field(..., min_length=1)
    function_key: str = Field(..., min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="PUSH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


def get_twilio_settings() -> TwilioSettings:
    return TwilioSettings()


def get_push_settings() -> PushSettings:
    return PushSettings()
