"""
Collaborator boundaries and dispatch results.

The fan-out engine never talks to a database, a push service or an SMS
provider directly.  It depends on four small protocols and records every
delivery attempt as an explicit ``DispatchResult``, so that "one channel
failed for one contact" is a value the caller can inspect rather than an
exception that disappeared somewhere.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Optional, Protocol

import structlog
from pydantic import BaseModel, Field

from partnertrace.models import ContactToNotify, DispatchChannel

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------

class ContactResolver(Protocol):
    """Returns the contacts eligible for notification for one lookback window."""

    def resolve_eligible_contacts(
        self,
        reporting_user_id: str,
        test_date: date,
        lookback_days: int,
    ) -> list[ContactToNotify]:  # pragma: no cover - Protocol
        ...


class InAppNotifier(Protocol):
    """Persists one in-app notification record.  Not idempotent by itself."""

    def create_notification(
        self,
        recipient_id: str,
        condition_id: str,
        vague_elapsed_text: str,
        *,
        run_id: Optional[str] = None,
    ) -> str:  # pragma: no cover - Protocol
        ...


class PushTrigger(Protocol):
    """Best-effort push notification for a platform user."""

    def trigger_push(self, recipient_id: str) -> bool:  # pragma: no cover - Protocol
        ...


class SmsSender(Protocol):
    """Delivers one SMS.  A falsy return value counts as a failure."""

    def send_sms(self, phone_number: str, body: str) -> Any:  # pragma: no cover - Protocol
        ...


# ---------------------------------------------------------------------------
# Dispatch result
# ---------------------------------------------------------------------------

class DispatchResult(BaseModel):
    """Outcome of one delivery attempt on one channel for one contact."""

    channel: DispatchChannel = Field(..., description="Channel the attempt used.")
    contact_id: str = Field(..., description="Contact the attempt targeted.")
    condition_id: str = Field(..., description="Condition the delivery was labelled with.")
    succeeded: bool = Field(..., description="Whether the collaborator reported success.")
    reference: str = Field(
        default="",
        description="Collaborator reference on success (notification id, message sid).",
    )
    error: str = Field(
        default="",
        description="Failure description (exception type and message) on failure.",
    )


def attempt_dispatch(
    channel: DispatchChannel,
    contact_id: str,
    condition_id: str,
    send: Callable[[], Any],
) -> DispatchResult:
    """Invoke a collaborator call and convert its outcome into a result.

    Any exception raised by ``send`` -- including transport timeouts -- is
    logged and turned into a failed result; it never propagates.  A falsy
    return value is also a failure.
    """
    try:
        outcome = send()
    except Exception as exc:  # noqa: BLE001 - one delivery never stops the run
        logger.warning(
            "dispatch.failed",
            channel=channel.value,
            contact_id=contact_id,
            condition_id=condition_id,
            error_type=type(exc).__name__,
        )
        return DispatchResult(
            channel=channel,
            contact_id=contact_id,
            condition_id=condition_id,
            succeeded=False,
            error=f"{type(exc).__name__}: {exc}",
        )

    if not outcome:
        logger.warning(
            "dispatch.rejected",
            channel=channel.value,
            contact_id=contact_id,
            condition_id=condition_id,
        )
        return DispatchResult(
            channel=channel,
            contact_id=contact_id,
            condition_id=condition_id,
            succeeded=False,
            error="Collaborator reported failure.",
        )

    return DispatchResult(
        channel=channel,
        contact_id=contact_id,
        condition_id=condition_id,
        succeeded=True,
        reference=outcome if isinstance(outcome, str) else "",
    )
