"""
Reporter-facing fan-out summary.

The reporting user always gets an aggregate summary -- counts plus the list
of people they need to tell themselves -- never a raw error, so a run with
partial failures does not look like "nothing happened".
"""

from __future__ import annotations

from typing import Any

from partnertrace.fanout import FanOutResult
from partnertrace.models import DispatchChannel


class FanOutSummary:
    """Structured summary of one fan-out run for the reporting user."""

    def __init__(
        self,
        run_id: str,
        headline: str,
        app_users_notified: int,
        sms_messages_sent: int,
        manual_follow_ups: list[dict[str, str]],
        failed_deliveries: int,
        skipped_conditions: list[str],
        generated_at: str,
        contacts_found: int = 0,
    ) -> None:
        self.run_id = run_id
        self.headline = headline
        self.app_users_notified = app_users_notified
        self.sms_messages_sent = sms_messages_sent
        self.manual_follow_ups = manual_follow_ups
        self.failed_deliveries = failed_deliveries
        self.skipped_conditions = skipped_conditions
        self.generated_at = generated_at
        self.contacts_found = contacts_found

    @property
    def nothing_to_notify(self) -> bool:
        """True only when no contact was found at all, delivered or not."""
        return self.contacts_found == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "headline": self.headline,
            "app_users_notified": self.app_users_notified,
            "sms_messages_sent": self.sms_messages_sent,
            "manual_follow_ups": self.manual_follow_ups,
            "contacts_found": self.contacts_found,
            "failed_deliveries": self.failed_deliveries,
            "skipped_conditions": self.skipped_conditions,
            "note": (
                "Counts are best-effort. Your identity was not shared with "
                "anyone who was notified."
            ),
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"FanOutSummary(run_id={self.run_id}, app={self.app_users_notified}, "
            f"sms={self.sms_messages_sent}, manual={len(self.manual_follow_ups)})"
        )


def generate_fanout_summary(result: FanOutResult) -> FanOutSummary:
    """Build the summary shown to the reporting user after a run."""
    manual = [
        {
            "display_name": c.display_name or "Unnamed contact",
            "when": c.vague_elapsed_text,
            "encounter_date": c.encounter_date.isoformat(),
        }
        for c in result.manual_contacts_no_phone
    ]

    return FanOutSummary(
        run_id=result.run_id,
        headline=_headline(result, len(manual)),
        app_users_notified=result.app_users_notified,
        sms_messages_sent=result.sms_messages_sent,
        manual_follow_ups=manual,
        failed_deliveries=len(result.failed_dispatches),
        skipped_conditions=list(result.skipped_conditions),
        generated_at=result.completed_at.isoformat(),
        contacts_found=result.total_contacts,
    )


def _undelivered_count(result: FanOutResult) -> int:
    """Contacts whose in-app record or SMS failed.  Push failures are excluded."""
    return len({
        d.contact_id for d in result.failed_dispatches
        if d.channel in (DispatchChannel.IN_APP, DispatchChannel.SMS)
    })


def _headline(result: FanOutResult, manual_count: int) -> str:
    notified = result.app_users_notified + result.sms_messages_sent
    undelivered = _undelivered_count(result)
    if notified == 0 and manual_count == 0 and undelivered == 0:
        return "No one could be found to notify for this result."

    parts = []
    if notified:
        parts.append(f"{notified} partner(s) notified anonymously")
    if undelivered:
        parts.append(f"{undelivered} notification(s) could not be delivered")
    if manual_count:
        parts.append(f"{manual_count} partner(s) to contact yourself")
    return "; ".join(parts) + "."
