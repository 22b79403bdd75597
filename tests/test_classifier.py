"""
Tests for partnertrace.classifier -- Channel Classifier.
"""

from datetime import date

import pytest

from partnertrace.classifier import classify_contact, has_phone_number, partition_contacts
from partnertrace.models import ContactChannel, ContactToNotify


def _make_contact(
    contact_id: str = "c1",
    channel: ContactChannel = ContactChannel.MANUAL_UNREACHABLE,
    phone_number: str | None = None,
) -> ContactToNotify:
    return ContactToNotify(
        contact_id=contact_id,
        channel=channel,
        phone_number=phone_number,
        vague_elapsed_text="in the past week",
        encounter_date=date(2025, 1, 2),
    )


class TestClassifyContact:
    def test_app_user(self):
        assert classify_contact(_make_contact(channel=ContactChannel.APP_USER)) == ContactChannel.APP_USER

    def test_app_user_with_phone_stays_in_app(self):
        contact = _make_contact(channel=ContactChannel.APP_USER, phone_number="+15550100")
        assert classify_contact(contact) == ContactChannel.APP_USER

    def test_phone_number_makes_sms_capable(self):
        assert classify_contact(_make_contact(phone_number="+15550100")) == ContactChannel.SMS_CAPABLE

    @pytest.mark.parametrize("phone", [None, "", "   "])
    def test_no_usable_phone_is_manual(self, phone):
        assert classify_contact(_make_contact(phone_number=phone)) == ContactChannel.MANUAL_UNREACHABLE

    def test_sms_hint_without_phone_degrades_to_manual(self):
        contact = _make_contact(channel=ContactChannel.SMS_CAPABLE)
        assert classify_contact(contact) == ContactChannel.MANUAL_UNREACHABLE

    def test_has_phone_number(self):
        assert has_phone_number(_make_contact(phone_number=" +15550100 "))
        assert not has_phone_number(_make_contact(phone_number=" "))


class TestPartitionContacts:
    def test_every_channel_present_even_when_empty(self):
        buckets = partition_contacts([])
        assert set(buckets) == set(ContactChannel)
        assert all(v == [] for v in buckets.values())

    def test_each_contact_in_exactly_one_bucket_in_order(self):
        contacts = [
            _make_contact("m1"),
            _make_contact("a1", channel=ContactChannel.APP_USER),
            _make_contact("s1", phone_number="+15550100"),
            _make_contact("a2", channel=ContactChannel.APP_USER),
        ]
        buckets = partition_contacts(contacts)

        assert [c.contact_id for c in buckets[ContactChannel.APP_USER]] == ["a1", "a2"]
        assert [c.contact_id for c in buckets[ContactChannel.SMS_CAPABLE]] == ["s1"]
        assert [c.contact_id for c in buckets[ContactChannel.MANUAL_UNREACHABLE]] == ["m1"]
        assert sum(len(v) for v in buckets.values()) == len(contacts)
