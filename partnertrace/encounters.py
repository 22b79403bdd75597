"""
In-memory encounter ledger -- a reference ``ContactResolver``.

Production deployments resolve contacts inside the database.  The ledger
reproduces the same contract in memory for tests, demos and small pilots:
for a reporting user, a test date and a lookback window it returns each
contact whose *most recent* encounter falls inside the window, together with
a vague elapsed-time phrase computed against the ledger's clock.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, Field

from partnertrace.messages import vague_elapsed_phrase
from partnertrace.models import ContactChannel, ContactToNotify


class Contact(BaseModel):
    """A person the reporting user has recorded encounters with."""

    contact_id: str = Field(..., min_length=1, description="Opaque contact identifier.")
    display_name: str = Field(default="", description="Name as the reporter knows them.")
    is_platform_user: bool = Field(
        default=False,
        description="Whether the contact has an account on the platform.",
    )
    phone_number: Optional[str] = Field(default=None, description="Phone number, if recorded.")


class EncounterLedger:
    """Stores encounters per reporting user and resolves eligible contacts."""

    def __init__(self, clock: Callable[[], date] | None = None) -> None:
        self._clock = clock or date.today
        self._contacts: dict[str, Contact] = {}
        self._encounters: dict[str, dict[str, list[date]]] = {}

    def record_encounter(self, reporting_user_id: str, contact: Contact, met_on: date) -> None:
        """Record that ``reporting_user_id`` met ``contact`` on ``met_on``.

        The latest contact details win when the same contact is recorded again.
        """
        self._contacts[contact.contact_id] = contact.model_copy(deep=True)
        by_contact = self._encounters.setdefault(reporting_user_id, {})
        by_contact.setdefault(contact.contact_id, []).append(met_on)

    def resolve_eligible_contacts(
        self,
        reporting_user_id: str,
        test_date: date,
        lookback_days: int,
    ) -> list[ContactToNotify]:
        window_start = test_date - timedelta(days=lookback_days)
        today = self._clock()
        eligible: list[ContactToNotify] = []

        for contact_id, dates in self._encounters.get(reporting_user_id, {}).items():
            in_window = [d for d in dates if window_start <= d <= test_date]
            if not in_window:
                continue
            latest = max(in_window)
            contact = self._contacts[contact_id]
            eligible.append(ContactToNotify(
                contact_id=contact_id,
                channel=_channel_hint(contact),
                display_name=contact.display_name,
                phone_number=contact.phone_number,
                vague_elapsed_text=vague_elapsed_phrase(latest, today),
                encounter_date=latest,
            ))

        return eligible


def _channel_hint(contact: Contact) -> ContactChannel:
    if contact.is_platform_user:
        return ContactChannel.APP_USER
    if contact.phone_number:
        return ContactChannel.SMS_CAPABLE
    return ContactChannel.MANUAL_UNREACHABLE
