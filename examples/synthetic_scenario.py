"""
Synthetic Scenario: Anonymous Partner Notification Walkthrough
==============================================================

Demonstrates a full contact-trace fan-out with entirely synthetic data.

Steps demonstrated:
  1. Load the condition table and fan-out policy from YAML
  2. Record encounters for a synthetic reporting user
  3. Report a positive result for two conditions
  4. Inspect the reporter-facing summary
  5. Read the anonymous alert as the notified app user
  6. Export the redacted audit trail for the run

Usage:
    python examples/synthetic_scenario.py
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

from partnertrace.config import load_policy_from_yaml, load_registry_from_yaml
from partnertrace.encounters import Contact, EncounterLedger
from partnertrace.fanout import ContactTraceFanOut
from partnertrace.log_config import configure_logging
from partnertrace.notifications import NotificationInbox
from partnertrace.push import LoggingPushTrigger
from partnertrace.sms import LoggingSmsSender
from partnertrace.summary import generate_fanout_summary


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    configure_logging(level="WARNING")
    today = date(2025, 1, 20)

    _banner("Step 1: Load Conditions")
    config_path = Path(__file__).parent / "conditions.yaml"
    registry = load_registry_from_yaml(config_path)
    policy = load_policy_from_yaml(config_path)
    for condition in registry.list_conditions():
        print(f"  {condition.condition_id:<10} {condition.lookback_days:>3} days")

    _banner("Step 2: Record Encounters")
    ledger = EncounterLedger(clock=lambda: today)
    alex = Contact(contact_id="user_a", display_name="Alex", is_platform_user=True)
    sam = Contact(contact_id="contact_b", display_name="Sam", phone_number="+15550100")
    jo = Contact(contact_id="contact_c", display_name="Jo")
    ledger.record_encounter("user_u", alex, date(2025, 1, 2))
    ledger.record_encounter("user_u", alex, date(2024, 12, 1))
    ledger.record_encounter("user_u", sam, date(2024, 12, 20))
    ledger.record_encounter("user_u", jo, date(2025, 1, 5))
    print("Recorded 4 encounters with 3 contacts.")

    _banner("Step 3: Report Positive Result")
    inbox = NotificationInbox(registry=registry)
    engine = ContactTraceFanOut(
        resolver=ledger,
        notifier=inbox,
        push=LoggingPushTrigger(),
        sms=LoggingSmsSender(),
        registry=registry,
        policy=policy,
        clock=lambda: today,
    )
    result = engine.run("user_u", ["chlamydia", "syphilis"], date(2025, 1, 10))
    print(f"App users notified: {result.app_users_notified}")
    print(f"SMS messages sent:  {result.sms_messages_sent}")
    print(f"Manual follow-ups:  {[c.display_name for c in result.manual_contacts_no_phone]}")

    _banner("Step 4: Reporter Summary")
    print(json.dumps(generate_fanout_summary(result).to_dict(), indent=2))

    _banner("Step 5: Recipient View")
    for record in inbox.unread_for_recipient("user_a"):
        title, body = inbox.render_alert(record)
        print(f"{title}: {body}")
        inbox.mark_read(record.notification_id, "user_a")
    print(f"Unread after reading: {inbox.unread_count('user_a')}")

    _banner("Step 6: Audit Export")
    export = engine.audit_log.export_for_review(result.run_id)
    print(json.dumps(export["export_metadata"], indent=2))


if __name__ == "__main__":
    main()
