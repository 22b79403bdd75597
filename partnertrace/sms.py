"""
SMS transports.

``TwilioSmsSender`` posts to the Twilio Messages API through a messaging
service.  ``LoggingSmsSender`` records the attempt in the log and sends
nothing; it is the default for development and demos.

Message bodies and phone numbers are never written to the log.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from partnertrace.settings import TwilioSettings, get_twilio_settings

logger = structlog.get_logger(__name__)


class SmsDeliveryError(Exception):
    """Base class for SMS transport failures."""


class SmsHTTPError(SmsDeliveryError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any | None = None) -> None:
        super().__init__(f"SMS provider error: status_code={status_code}")
        self.status_code = status_code
        self.body = body


class SmsConnectionError(SmsDeliveryError):
    """Connection failure or timeout while talking to the provider."""


class TwilioSmsSender:
    """Sends SMS through the Twilio Messages API."""

    def __init__(
        self,
        settings: TwilioSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_twilio_settings()
        self._transport = transport

    @property
    def messages_url(self) -> str:
        base = self._settings.api_base_url.rstrip("/")
        return f"{base}/Accounts/{self._settings.account_sid}/Messages.json"

    def send_sms(self, phone_number: str, body: str) -> str:
        """Send one message and return the provider's message SID.

        Raises:
            ValueError: If ``phone_number`` or ``body`` is blank.
            SmsHTTPError: If Twilio answers with a 4xx/5xx status.
            SmsConnectionError: On connection errors and timeouts.
        """
        if not phone_number.strip() or not body.strip():
            raise ValueError("phone_number and body are required")

        form = {
            "To": phone_number.strip(),
            "MessagingServiceSid": self._settings.messaging_service_sid,
            "Body": body,
        }

        try:
            with httpx.Client(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = client.post(
                    self.messages_url,
                    data=form,
                    auth=(self._settings.account_sid, self._settings.auth_token),
                )
        except httpx.RequestError as exc:
            raise SmsConnectionError(str(exc)) from exc

        if response.status_code // 100 != 2:
            try:
                error_body = response.json()
            except ValueError:
                error_body = response.text
            raise SmsHTTPError(status_code=response.status_code, body=error_body)

        try:
            sid = response.json().get("sid", "")
        except ValueError:
            sid = ""
        logger.info("sms.sent", provider="twilio", message_sid=sid)
        return sid or "sent"


class LoggingSmsSender:
    """Records SMS attempts without sending anything."""

    def __init__(self) -> None:
        self.sent_count = 0

    def send_sms(self, phone_number: str, body: str) -> bool:
        if not phone_number.strip() or not body.strip():
            raise ValueError("phone_number and body are required")
        self.sent_count += 1
        logger.info("sms.logged", body_length=len(body))
        return True
