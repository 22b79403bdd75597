"""
Core data models for partnertrace.

Contacts are transient, run-scoped records produced by the resolver.  The
only durable object is the in-app ``NotificationRecord``, which belongs to
the notification store rather than to the fan-out engine.

PRIVACY: None of these models carry the reporting user's identity into a
recipient-facing field.  ``vague_elapsed_text`` is the only time reference
that may be shown to a recipient.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ContactChannel(str, enum.Enum):
    """Deliverable channel for a resolved contact.

    * ``APP_USER``           -- platform user; in-app record plus push.
    * ``SMS_CAPABLE``        -- not a platform user but a phone number is known.
    * ``MANUAL_UNREACHABLE`` -- neither; handed back to the reporter.
    """

    APP_USER = "app_user"
    SMS_CAPABLE = "sms_capable"
    MANUAL_UNREACHABLE = "manual_unreachable"


class DispatchChannel(str, enum.Enum):
    """Concrete delivery mechanism used for a single dispatch attempt."""

    IN_APP = "in_app"
    PUSH = "push"
    SMS = "sms"


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

class ContactToNotify(BaseModel):
    """A contact eligible for notification in one fan-out run.

    Produced fresh by the resolver for every condition window and never
    persisted.  ``channel`` is the resolver's hint; the classifier makes the
    final decision.
    """

    contact_id: str = Field(
        ...,
        min_length=1,
        description="Opaque contact identifier (platform user id for app users).",
    )
    channel: ContactChannel = Field(
        default=ContactChannel.MANUAL_UNREACHABLE,
        description="Channel hint supplied by the resolver.",
    )
    display_name: str = Field(
        default="",
        description="Name as the reporting user knows this contact.  Never sent to anyone.",
    )
    phone_number: Optional[str] = Field(
        default=None,
        description="Phone number for SMS delivery, if the reporter recorded one.",
    )
    vague_elapsed_text: str = Field(
        default="",
        description=(
            "Deliberately imprecise time reference (e.g. 'about 2 weeks ago').  "
            "The only time reference a recipient ever sees."
        ),
    )
    encounter_date: date = Field(
        ...,
        description="Date of the most recent qualifying encounter.  Never sent to a recipient.",
    )


class NotificationRecord(BaseModel):
    """Durable in-app notification owned by the notification store.

    Lifecycle: absent -> delivered -> (optionally) read.  ``read_at`` is set
    once and never cleared.
    """

    notification_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique notification identifier.",
    )
    recipient_id: str = Field(
        ...,
        description="Platform user receiving the notification.",
    )
    condition_id: str = Field(
        ...,
        description="Reported condition this notification concerns.",
    )
    vague_elapsed_text: str = Field(
        ...,
        description="Vague elapsed-time phrase shown to the recipient.",
    )
    run_id: Optional[str] = Field(
        default=None,
        description="Fan-out run that produced this record.",
    )
    delivered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp of delivery.",
    )
    read_at: Optional[datetime] = Field(
        default=None,
        description="UTC timestamp the recipient marked this notification read.",
    )

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def mark_read(self, at: datetime | None = None) -> bool:
        """Set ``read_at`` if it is not already set.

        Returns:
            True if the record transitioned to read, False if it already was.
        """
        if self.read_at is not None:
            return False
        self.read_at = at or datetime.now(timezone.utc)
        return True
