"""
Tests for partnertrace.encounters -- in-memory encounter ledger.
"""

from datetime import date

from partnertrace.encounters import Contact, EncounterLedger
from partnertrace.models import ContactChannel


TODAY = date(2025, 1, 20)


def _make_ledger() -> EncounterLedger:
    return EncounterLedger(clock=lambda: TODAY)


class TestResolveEligibleContacts:
    def test_window_is_inclusive_on_both_ends(self):
        ledger = _make_ledger()
        ledger.record_encounter("u1", Contact(contact_id="start"), date(2024, 12, 11))
        ledger.record_encounter("u1", Contact(contact_id="end"), date(2025, 1, 10))
        ledger.record_encounter("u1", Contact(contact_id="before"), date(2024, 12, 10))
        ledger.record_encounter("u1", Contact(contact_id="after"), date(2025, 1, 11))

        ids = {c.contact_id for c in ledger.resolve_eligible_contacts("u1", date(2025, 1, 10), 30)}
        assert ids == {"start", "end"}

    def test_latest_in_window_encounter_wins(self):
        ledger = _make_ledger()
        contact = Contact(contact_id="a", is_platform_user=True)
        ledger.record_encounter("u1", contact, date(2024, 12, 1))
        ledger.record_encounter("u1", contact, date(2025, 1, 2))
        ledger.record_encounter("u1", contact, date(2025, 1, 15))

        [resolved] = ledger.resolve_eligible_contacts("u1", date(2025, 1, 10), 90)
        assert resolved.encounter_date == date(2025, 1, 2)
        assert resolved.vague_elapsed_text == "about a month ago"

    def test_channel_hints(self):
        ledger = _make_ledger()
        ledger.record_encounter("u1", Contact(contact_id="a", is_platform_user=True), date(2025, 1, 5))
        ledger.record_encounter("u1", Contact(contact_id="s", phone_number="+15550100"), date(2025, 1, 5))
        ledger.record_encounter("u1", Contact(contact_id="m"), date(2025, 1, 5))

        hints = {
            c.contact_id: c.channel
            for c in ledger.resolve_eligible_contacts("u1", date(2025, 1, 10), 30)
        }
        assert hints == {
            "a": ContactChannel.APP_USER,
            "s": ContactChannel.SMS_CAPABLE,
            "m": ContactChannel.MANUAL_UNREACHABLE,
        }

    def test_encounters_scoped_to_reporter(self):
        ledger = _make_ledger()
        ledger.record_encounter("u1", Contact(contact_id="a"), date(2025, 1, 5))

        assert ledger.resolve_eligible_contacts("u2", date(2025, 1, 10), 30) == []

    def test_latest_contact_details_win(self):
        ledger = _make_ledger()
        ledger.record_encounter("u1", Contact(contact_id="s"), date(2025, 1, 1))
        ledger.record_encounter("u1", Contact(contact_id="s", phone_number="+15550100"), date(2025, 1, 3))

        [resolved] = ledger.resolve_eligible_contacts("u1", date(2025, 1, 10), 30)
        assert resolved.phone_number == "+15550100"
