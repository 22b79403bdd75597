"""
Channel Classifier -- decides how each resolved contact can be reached.

Classification is total and pure: every contact maps to exactly one
``ContactChannel`` and the answer depends only on that contact.

* ``APP_USER``           -- the resolver marked the contact as a platform user.
* ``SMS_CAPABLE``        -- not a platform user, but a usable phone number is known.
* ``MANUAL_UNREACHABLE`` -- neither; the reporting user follows up in person.
"""

from __future__ import annotations

from typing import Iterable

from partnertrace.models import ContactChannel, ContactToNotify


def has_phone_number(contact: ContactToNotify) -> bool:
    """Whether the contact carries a non-blank phone number."""
    return bool(contact.phone_number and contact.phone_number.strip())


def classify_contact(contact: ContactToNotify) -> ContactChannel:
    """Map a resolved contact to its single deliverable channel.

    A platform user is always reached in-app, whether or not a phone number
    is also on file.  A resolver hint of ``SMS_CAPABLE`` without a phone
    number degrades to ``MANUAL_UNREACHABLE``.
    """
    if contact.channel == ContactChannel.APP_USER:
        return ContactChannel.APP_USER
    if has_phone_number(contact):
        return ContactChannel.SMS_CAPABLE
    return ContactChannel.MANUAL_UNREACHABLE


def partition_contacts(
    contacts: Iterable[ContactToNotify],
) -> dict[ContactChannel, list[ContactToNotify]]:
    """Split contacts into one bucket per channel, preserving input order."""
    buckets: dict[ContactChannel, list[ContactToNotify]] = {
        channel: [] for channel in ContactChannel
    }
    for contact in contacts:
        buckets[classify_contact(contact)].append(contact)
    return buckets
