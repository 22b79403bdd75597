"""
Push-notification triggers.

A push only nudges the recipient to open the app; the in-app record is the
source of truth.  ``HttpPushTrigger`` calls the push-notification function
with the recipient's user id.  ``LoggingPushTrigger`` just logs.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from partnertrace.settings import PushSettings, get_push_settings

logger = structlog.get_logger(__name__)


class PushDeliveryError(Exception):
    """Base class for push trigger failures."""


class PushHTTPError(PushDeliveryError):
    """The push function answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any | None = None) -> None:
        super().__init__(f"Push function error: status_code={status_code}")
        self.status_code = status_code
        self.body = body


class PushConnectionError(PushDeliveryError):
    """Connection failure or timeout while calling the push function."""


class HttpPushTrigger:
    """Invokes the push-notification function over HTTP."""

    def __init__(
        self,
        settings: PushSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_push_settings()
        self._transport = transport

    def _build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.function_key}",
        }

    def trigger_push(self, recipient_id: str) -> bool:
        """Ask the push function to notify ``recipient_id``.

        Raises:
            PushHTTPError: On a 4xx/5xx answer.
            PushConnectionError: On connection errors and timeouts.
        """
        try:
            with httpx.Client(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = client.post(
                    self._settings.function_url,
                    json={"user_id": recipient_id},
                    headers=self._build_headers(),
                )
        except httpx.RequestError as exc:
            raise PushConnectionError(str(exc)) from exc

        if response.status_code // 100 != 2:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise PushHTTPError(status_code=response.status_code, body=body)

        return True


class LoggingPushTrigger:
    """Logs push requests without calling any service."""

    def __init__(self) -> None:
        self.triggered: list[str] = []

    def trigger_push(self, recipient_id: str) -> bool:
        self.triggered.append(recipient_id)
        logger.info("push.logged", recipient_id=recipient_id)
        return True
