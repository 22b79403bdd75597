"""
Tests for partnertrace.summary -- reporter-facing fan-out summary.
"""

from datetime import date

from partnertrace.dispatch import DispatchResult
from partnertrace.fanout import FanOutResult
from partnertrace.models import ContactChannel, ContactToNotify, DispatchChannel
from partnertrace.summary import generate_fanout_summary


def _make_manual(contact_id: str, display_name: str = "") -> ContactToNotify:
    return ContactToNotify(
        contact_id=contact_id,
        channel=ContactChannel.MANUAL_UNREACHABLE,
        display_name=display_name,
        vague_elapsed_text="about 2 weeks ago",
        encounter_date=date(2025, 1, 5),
    )


class TestGenerateFanoutSummary:
    def test_counts_and_manual_list(self):
        result = FanOutResult(
            run_id="run_a",
            app_users_notified=2,
            sms_messages_sent=1,
            manual_contacts_no_phone=[_make_manual("c1", "Jo"), _make_manual("c2")],
        )
        summary = generate_fanout_summary(result)

        assert summary.headline == "3 partner(s) notified anonymously; 2 partner(s) to contact yourself."
        assert summary.manual_follow_ups[0] == {
            "display_name": "Jo",
            "when": "about 2 weeks ago",
            "encounter_date": "2025-01-05",
        }
        assert summary.manual_follow_ups[1]["display_name"] == "Unnamed contact"
        assert summary.nothing_to_notify is False

    def test_nothing_to_notify(self):
        summary = generate_fanout_summary(FanOutResult(run_id="run_a"))
        assert summary.nothing_to_notify
        assert summary.headline == "No one could be found to notify for this result."

    def test_only_manual(self):
        summary = generate_fanout_summary(
            FanOutResult(run_id="run_a", manual_contacts_no_phone=[_make_manual("c1")])
        )
        assert summary.headline == "1 partner(s) to contact yourself."

    def test_failures_and_skips_reported(self):
        result = FanOutResult(
            run_id="run_a",
            app_users_notified=1,
            skipped_conditions=["hiv"],
            dispatches=[
                DispatchResult(
                    channel=DispatchChannel.PUSH, contact_id="a1",
                    condition_id="chlamydia", succeeded=False, error="TimeoutError: x",
                ),
            ],
        )
        data = generate_fanout_summary(result).to_dict()

        assert data["failed_deliveries"] == 1
        assert data["skipped_conditions"] == ["hiv"]
        assert data["run_id"] == "run_a"
        assert "identity was not shared" in data["note"]

    def test_total_delivery_failure_is_not_reported_as_nobody(self):
        result = FanOutResult(
            run_id="run_a",
            dispatches=[
                DispatchResult(
                    channel=DispatchChannel.SMS, contact_id="s1",
                    condition_id="chlamydia", succeeded=False, error="ConnectionError: down",
                ),
            ],
        )
        summary = generate_fanout_summary(result)

        assert summary.nothing_to_notify is False
        assert summary.contacts_found == 1
        assert summary.headline == "1 notification(s) could not be delivered."

    def test_push_failure_alone_is_not_undelivered(self):
        result = FanOutResult(
            run_id="run_a",
            app_users_notified=1,
            dispatches=[
                DispatchResult(
                    channel=DispatchChannel.IN_APP, contact_id="a1",
                    condition_id="hiv", succeeded=True, reference="n1",
                ),
                DispatchResult(
                    channel=DispatchChannel.PUSH, contact_id="a1",
                    condition_id="hiv", succeeded=False, error="TimeoutError: x",
                ),
            ],
        )
        summary = generate_fanout_summary(result)

        assert summary.headline == "1 partner(s) notified anonymously."
        assert summary.failed_deliveries == 1
