"""
Contact-Trace Fan-out Orchestrator.

Given a reporting user, the reported conditions and the test date, the
orchestrator notifies every distinct partner met within each condition's
lookback window:

    validate -> for each condition (input order):
        resolve contacts -> classify -> dedup check-then-mark -> dispatch

* ``APP_USER``           -- one in-app record, then a best-effort push.
* ``SMS_CAPABLE``        -- one anonymous SMS.
* ``MANUAL_UNREACHABLE`` -- returned to the reporter for in-person follow-up.

**Guarantees enforced in code:**

* At most one delivery per contact per channel per run.  Dedup sets are
  keyed by contact id, are local to one ``run()`` call, and a contact is
  marked processed *before* any dispatch is attempted.
* When a contact qualifies under several conditions, the first condition in
  input order labels its single notification.
* Recipient-facing text carries only a condition label and a vague
  elapsed-time phrase.  Every text is checked against the reporter's id,
  caller-supplied aliases, the test date and the encounter date; a text that
  still leaks is never sent.
* A failing resolver, in-app store, push trigger or SMS sender affects only
  that condition or that single delivery.  Only invalid input raises.

Counts in the result are best-effort telemetry, not delivery guarantees:
channels are not atomic with each other.  No cross-run idempotence is
provided here; every run gets a fresh ``run_id`` that the in-app store uses
as part of its uniqueness key.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel, Field

from partnertrace.audit import AuditEventType, AuditLog
from partnertrace.classifier import partition_contacts
from partnertrace.config import DEFAULT_POLICY, Condition, ConditionRegistry, FanOutPolicy
from partnertrace.dispatch import (
    ContactResolver,
    DispatchResult,
    InAppNotifier,
    PushTrigger,
    SmsSender,
    attempt_dispatch,
)
from partnertrace.messages import (
    assert_anonymous,
    compose_sms_body,
    identifying_fragments,
    sanitize_elapsed_text,
)
from partnertrace.models import ContactChannel, ContactToNotify, DispatchChannel

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidFanOutRequestError(ValueError):
    """Raised before any resolver call when the request itself is invalid."""
    pass


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------

class FanOutResult(BaseModel):
    """Aggregate outcome of one fan-out run.  Ephemeral; never persisted."""

    run_id: str = Field(..., description="Identifier of this run.")
    conditions: list[str] = Field(
        default_factory=list,
        description="Condition ids processed, deduplicated, in input order.",
    )
    app_users_notified: int = Field(
        default=0,
        description="In-app notification records created.",
    )
    sms_messages_sent: int = Field(
        default=0,
        description="SMS messages the sender accepted.",
    )
    manual_contacts_no_phone: list[ContactToNotify] = Field(
        default_factory=list,
        description="Contacts with no deliverable channel, for the reporter to follow up.",
    )
    skipped_conditions: list[str] = Field(
        default_factory=list,
        description="Conditions whose resolver call failed.",
    )
    dispatches: list[DispatchResult] = Field(
        default_factory=list,
        description="Every delivery attempt, successful or not, in attempt order.",
    )
    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp at which the run finished.",
    )

    @property
    def failed_dispatches(self) -> list[DispatchResult]:
        return [d for d in self.dispatches if not d.succeeded]

    @property
    def push_notifications_triggered(self) -> int:
        return sum(
            1 for d in self.dispatches
            if d.channel == DispatchChannel.PUSH and d.succeeded
        )

    @property
    def total_contacts(self) -> int:
        """Distinct contacts handled on any channel."""
        delivered = {
            d.contact_id for d in self.dispatches
            if d.channel in (DispatchChannel.IN_APP, DispatchChannel.SMS)
        }
        return len(delivered) + len(self.manual_contacts_no_phone)


class _RunState:
    """Run-scoped dedup sets and accumulators.  Discarded after the run."""

    def __init__(self, run_id: str, fragments_base: list[str]) -> None:
        self.run_id = run_id
        self.fragments_base = fragments_base
        self.processed: dict[ContactChannel, set[str]] = {
            channel: set() for channel in ContactChannel
        }
        self.result = FanOutResult(run_id=run_id)

    def claim(self, channel: ContactChannel, contact_id: str) -> bool:
        """Check-then-mark.  True only the first time a contact is seen on a channel."""
        seen = self.processed[channel]
        if contact_id in seen:
            return False
        seen.add(contact_id)
        return True


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ContactTraceFanOut:
    """Runs anonymous contact-trace notification fan-outs.

    The orchestrator holds only its collaborators; no state survives
    between runs apart from what the collaborators themselves persist.
    """

    def __init__(
        self,
        resolver: ContactResolver,
        notifier: InAppNotifier,
        push: PushTrigger,
        sms: SmsSender,
        registry: ConditionRegistry | None = None,
        policy: FanOutPolicy | None = None,
        audit_log: AuditLog | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self._resolver = resolver
        self._notifier = notifier
        self._push = push
        self._sms = sms
        self._policy = policy if policy is not None else DEFAULT_POLICY
        self._registry = registry if registry is not None else ConditionRegistry(
            default_lookback_days=self._policy.default_lookback_days,
        )
        self._audit_log = audit_log if audit_log is not None else AuditLog()
        self._clock = clock or date.today

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    # -- validation --

    def _validate(
        self,
        reporting_user_id: str,
        condition_ids: Iterable[str],
        test_date: date,
    ) -> list[str]:
        """Return normalized, deduplicated condition ids or raise."""
        if not isinstance(reporting_user_id, str) or not reporting_user_id.strip():
            raise InvalidFanOutRequestError("reporting_user_id is required.")
        if isinstance(condition_ids, str):
            raise InvalidFanOutRequestError(
                "condition_ids must be a list of condition identifiers, not a string."
            )

        normalized = [
            c.strip().lower() for c in condition_ids
            if isinstance(c, str) and c.strip()
        ]
        if not normalized:
            raise InvalidFanOutRequestError("At least one condition must be reported.")

        if not isinstance(test_date, date) or isinstance(test_date, datetime):
            raise InvalidFanOutRequestError("test_date must be a calendar date.")
        if test_date > self._clock():
            raise InvalidFanOutRequestError(
                f"test_date {test_date.isoformat()} is in the future."
            )

        return list(dict.fromkeys(normalized))

    # -- main operation --

    def run(
        self,
        reporting_user_id: str,
        condition_ids: Iterable[str],
        test_date: date,
        *,
        reporter_aliases: Iterable[str] = (),
    ) -> FanOutResult:
        """Notify every eligible contact of a reported positive result.

        Args:
            reporting_user_id: The user reporting the result.
            condition_ids: Reported conditions, processed in this order.
            test_date: Date of the positive test.  Must not be in the future.
            reporter_aliases: Extra strings identifying the reporter (display
                name, handle) that must never reach a recipient.

        Returns:
            A ``FanOutResult``.  Resolver and delivery failures are reflected
            in ``skipped_conditions`` and ``dispatches``, never raised.

        Raises:
            InvalidFanOutRequestError: If the request is invalid.
        """
        conditions = self._validate(reporting_user_id, condition_ids, test_date)

        state = _RunState(
            run_id=str(uuid.uuid4()),
            fragments_base=identifying_fragments(
                reporting_user_id, dates=[test_date], aliases=reporter_aliases,
            ),
        )
        state.result.conditions = conditions

        self._audit_log.record(
            run_id=state.run_id,
            event_type=AuditEventType.FAN_OUT_STARTED,
            actor_id=reporting_user_id,
            actor_role="REPORTER",
            metadata={"conditions": conditions, "test_date": test_date.isoformat()},
        )
        logger.info("fanout.started", run_id=state.run_id, conditions=conditions)

        for condition_id in conditions:
            condition = self._registry.resolve(condition_id)
            contacts = self._resolve(state, reporting_user_id, test_date, condition)
            if contacts is None:
                continue

            # The reporter is never their own contact.
            contacts = [c for c in contacts if c.contact_id != reporting_user_id]
            buckets = partition_contacts(contacts)

            for contact in buckets[ContactChannel.APP_USER]:
                if state.claim(ContactChannel.APP_USER, contact.contact_id):
                    self._notify_app_user(state, condition, contact)

            for contact in buckets[ContactChannel.SMS_CAPABLE]:
                if state.claim(ContactChannel.SMS_CAPABLE, contact.contact_id):
                    self._notify_by_sms(state, condition, contact)

            for contact in buckets[ContactChannel.MANUAL_UNREACHABLE]:
                if state.claim(ContactChannel.MANUAL_UNREACHABLE, contact.contact_id):
                    self._add_manual(state, condition, contact)

        result = state.result
        result.completed_at = datetime.now(timezone.utc)

        self._audit_log.record(
            run_id=state.run_id,
            event_type=AuditEventType.FAN_OUT_COMPLETED,
            metadata={
                "app_users_notified": result.app_users_notified,
                "sms_messages_sent": result.sms_messages_sent,
                "manual_follow_ups": len(result.manual_contacts_no_phone),
                "failed_dispatches": len(result.failed_dispatches),
                "skipped_conditions": result.skipped_conditions,
            },
        )
        logger.info(
            "fanout.completed",
            run_id=state.run_id,
            app_users_notified=result.app_users_notified,
            sms_messages_sent=result.sms_messages_sent,
            manual_follow_ups=len(result.manual_contacts_no_phone),
            failed_dispatches=len(result.failed_dispatches),
        )
        return result

    # -- steps --

    def _resolve(
        self,
        state: _RunState,
        reporting_user_id: str,
        test_date: date,
        condition: Condition,
    ) -> Optional[list[ContactToNotify]]:
        """Resolve contacts for one condition; None when the resolver fails."""
        try:
            contacts = list(self._resolver.resolve_eligible_contacts(
                reporting_user_id, test_date, condition.lookback_days,
            ))
        except Exception as exc:  # noqa: BLE001 - one condition never stops the run
            logger.warning(
                "fanout.resolver_failed",
                run_id=state.run_id,
                condition_id=condition.condition_id,
                error_type=type(exc).__name__,
            )
            state.result.skipped_conditions.append(condition.condition_id)
            self._audit_log.record(
                run_id=state.run_id,
                event_type=AuditEventType.CONDITION_SKIPPED,
                target_entity=condition.condition_id,
                metadata={"error": f"{type(exc).__name__}: {exc}"},
            )
            return None

        self._audit_log.record(
            run_id=state.run_id,
            event_type=AuditEventType.CONDITION_RESOLVED,
            target_entity=condition.condition_id,
            metadata={
                "lookback_days": condition.lookback_days,
                "contacts_resolved": len(contacts),
            },
        )
        return contacts

    def _safe_elapsed_text(self, state: _RunState, contact: ContactToNotify) -> tuple[str, list[str]]:
        fragments = state.fragments_base + identifying_fragments(
            "", dates=[contact.encounter_date],
        )
        text = sanitize_elapsed_text(
            contact.vague_elapsed_text, fragments, self._policy.fallback_elapsed_text,
        )
        return text, fragments

    def _record_dispatch(
        self,
        state: _RunState,
        outcome: DispatchResult,
        success_event: AuditEventType,
        failure_event: AuditEventType,
    ) -> None:
        state.result.dispatches.append(outcome)
        metadata = {"condition_id": outcome.condition_id, "channel": outcome.channel.value}
        if not outcome.succeeded:
            metadata["error"] = outcome.error
        self._audit_log.record(
            run_id=state.run_id,
            event_type=success_event if outcome.succeeded else failure_event,
            target_entity=outcome.contact_id,
            metadata=metadata,
        )

    def _notify_app_user(
        self, state: _RunState, condition: Condition, contact: ContactToNotify,
    ) -> None:
        elapsed, fragments = self._safe_elapsed_text(state, contact)

        def create() -> str:
            assert_anonymous(elapsed, fragments)
            return self._notifier.create_notification(
                contact.contact_id,
                condition.condition_id,
                elapsed,
                run_id=state.run_id,
            )

        in_app = attempt_dispatch(
            DispatchChannel.IN_APP, contact.contact_id, condition.condition_id, create,
        )
        self._record_dispatch(
            state, in_app,
            AuditEventType.IN_APP_NOTIFICATION_CREATED,
            AuditEventType.IN_APP_NOTIFICATION_FAILED,
        )
        if not in_app.succeeded:
            return
        state.result.app_users_notified += 1

        if not self._policy.notify_push:
            return

        # Push is best-effort; its failure never touches the in-app record.
        pushed = attempt_dispatch(
            DispatchChannel.PUSH,
            contact.contact_id,
            condition.condition_id,
            lambda: self._push.trigger_push(contact.contact_id),
        )
        self._record_dispatch(
            state, pushed,
            AuditEventType.PUSH_TRIGGERED,
            AuditEventType.PUSH_FAILED,
        )

    def _notify_by_sms(
        self, state: _RunState, condition: Condition, contact: ContactToNotify,
    ) -> None:
        elapsed, fragments = self._safe_elapsed_text(state, contact)
        phone_number = (contact.phone_number or "").strip()

        def send() -> object:
            body = compose_sms_body(condition, elapsed, self._policy.sms_brand)
            template = compose_sms_body(condition, "", self._policy.sms_brand)
            assert_anonymous(body, fragments, template=template)
            return self._sms.send_sms(phone_number, body)

        outcome = attempt_dispatch(
            DispatchChannel.SMS, contact.contact_id, condition.condition_id, send,
        )
        self._record_dispatch(
            state, outcome,
            AuditEventType.SMS_SENT,
            AuditEventType.SMS_FAILED,
        )
        if outcome.succeeded:
            state.result.sms_messages_sent += 1

    def _add_manual(
        self, state: _RunState, condition: Condition, contact: ContactToNotify,
    ) -> None:
        state.result.manual_contacts_no_phone.append(
            contact.model_copy(update={"channel": ContactChannel.MANUAL_UNREACHABLE})
        )
        self._audit_log.record(
            run_id=state.run_id,
            event_type=AuditEventType.MANUAL_FOLLOW_UP,
            target_entity=contact.contact_id,
            metadata={"condition_id": condition.condition_id},
        )


def run_contact_trace_fan_out(
    reporting_user_id: str,
    condition_ids: Iterable[str],
    test_date: date,
    *,
    resolver: ContactResolver,
    notifier: InAppNotifier,
    push: PushTrigger,
    sms: SmsSender,
    registry: ConditionRegistry | None = None,
    policy: FanOutPolicy | None = None,
    audit_log: AuditLog | None = None,
    reporter_aliases: Iterable[str] = (),
) -> FanOutResult:
    """One-shot convenience wrapper around ``ContactTraceFanOut.run()``."""
    engine = ContactTraceFanOut(
        resolver=resolver,
        notifier=notifier,
        push=push,
        sms=sms,
        registry=registry,
        policy=policy,
        audit_log=audit_log,
    )
    return engine.run(
        reporting_user_id,
        condition_ids,
        test_date,
        reporter_aliases=reporter_aliases,
    )
