"""
Anonymous message composition and the privacy guard.

Recipients learn two things only: which condition was reported, and roughly
when the encounter happened.  Everything that could point back to the
reporting user -- their identifier, any alias the caller supplies, the test
date, the exact encounter date -- is collected as *identifying fragments*
and checked against every outbound text before it is sent.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable

from partnertrace.config import Condition


class PrivacyViolationError(Exception):
    """Raised when a recipient-facing text contains identifying content."""

    def __init__(self, fragments: list[str]) -> None:
        super().__init__(
            f"Recipient-facing text contains {len(fragments)} identifying fragment(s)."
        )
        self.fragments = fragments


# ---------------------------------------------------------------------------
# Vague elapsed-time phrases
# ---------------------------------------------------------------------------

def vague_elapsed_phrase(encounter_date: date, reference_date: date) -> str:
    """Describe how long ago an encounter was without naming a date.

    Buckets: within a week, about two weeks, about a month, a few months.
    Future encounter dates are treated as "in the past week".
    """
    days_ago = (reference_date - encounter_date).days
    if days_ago <= 7:
        return "in the past week"
    if days_ago <= 14:
        return "about 2 weeks ago"
    if days_ago <= 31:
        return "about a month ago"
    return "a few months ago"


# ---------------------------------------------------------------------------
# Identifying fragments
# ---------------------------------------------------------------------------

# English month names, independent of the process locale.
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _date_forms(d: date) -> list[str]:
    month = _MONTHS[d.month - 1]
    abbrev = month[:3]
    return [
        d.isoformat(),
        f"{d.day:02d}/{d.month:02d}/{d.year}",
        f"{d.month:02d}/{d.day:02d}/{d.year}",
        f"{d.day:02d}.{d.month:02d}.{d.year}",
        f"{month} {d.day}",
        f"{d.day} {month}",
        f"{abbrev} {d.day}",
        f"{d.day} {abbrev}",
    ]


def identifying_fragments(
    reporting_user_id: str,
    dates: Iterable[date] = (),
    aliases: Iterable[str] = (),
) -> list[str]:
    """Collect the strings that must never appear in recipient-facing text."""
    fragments = [reporting_user_id]
    fragments.extend(a for a in aliases if a)
    for d in dates:
        fragments.extend(_date_forms(d))
    # Deduplicate, ignore blanks, keep first-seen order.
    return list(dict.fromkeys(f.strip() for f in fragments if f and f.strip()))


def _contains(text: str, fragment: str) -> bool:
    pattern = r"(?<!\w)" + re.escape(fragment) + r"(?!\w)"
    return re.search(pattern, text, flags=re.IGNORECASE) is not None


def find_identifying_content(
    text: str,
    fragments: Iterable[str],
    template: str = "",
) -> list[str]:
    """Return every fragment found in ``text``.

    Matching is case-insensitive and anchored on word boundaries, so a short
    identifier such as ``u1`` does not match inside an ordinary word.

    ``template`` is the fixed wording ``text`` was composed from (the message
    with its per-contact parts left empty).  A fragment that already occurs
    there, such as an alias that happens to be "we" or "health", says
    nothing about the reporter and is ignored.
    """
    return [
        fragment for fragment in fragments
        if _contains(text, fragment) and not (template and _contains(template, fragment))
    ]


def assert_anonymous(text: str, fragments: Iterable[str], template: str = "") -> None:
    """Raise ``PrivacyViolationError`` if ``text`` contains any fragment."""
    found = find_identifying_content(text, fragments, template)
    if found:
        raise PrivacyViolationError(found)


def sanitize_elapsed_text(text: str, fragments: Iterable[str], fallback: str) -> str:
    """Return ``text`` if it is a safe vague phrase, otherwise ``fallback``.

    Blank phrases and phrases containing a date (or any other identifying
    fragment) are replaced.
    """
    text = (text or "").strip()
    if not text or find_identifying_content(text, fragments):
        return fallback
    return text


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------

def compose_sms_body(condition: Condition, vague_elapsed_text: str, brand: str) -> str:
    """Compose the anonymous SMS sent to a contact who is not a platform user."""
    return (
        f"{brand} Health Alert: Someone you were with {vague_elapsed_text} "
        f"has tested positive for {condition.message_label}. "
        "We recommend getting tested. This message is anonymous - no identifying "
        "information has been shared. Reply STOP to opt out."
    )


def compose_in_app_alert(condition: Condition, vague_elapsed_text: str) -> tuple[str, str]:
    """Compose the in-app alert as ``(title, body)``."""
    body = (
        f"A recent partner has tested positive for {condition.label}. "
        f"Based on an encounter {vague_elapsed_text}, you may have been exposed. "
        "Consider getting tested. This notification is anonymous - no identifying "
        "information about the other person has been shared."
    )
    return ("Health Alert", body)
