"""
In-app notification store.

Implements the ``InAppNotifier`` boundary in memory and the recipient-side
operations that go with it: listing, unread counts and marking read.

Records are unique on ``(recipient, condition, run_id)``: a repeated create
for the same run returns the existing record's id instead of writing a
second one.  Records from different runs are independent.

``read_at`` moves from unset to set exactly once and is never cleared.
Marking read is scoped to the recipient -- one user can never mark another
user's notification.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog

from partnertrace.audit import AuditEventType, AuditLog
from partnertrace.config import ConditionRegistry
from partnertrace.messages import compose_in_app_alert
from partnertrace.models import NotificationRecord

logger = structlog.get_logger(__name__)


class NotificationNotFoundError(KeyError):
    """Raised when a notification does not exist for the given recipient."""
    pass


class NotificationInbox:
    """In-memory store of in-app contact-trace notifications."""

    def __init__(
        self,
        registry: ConditionRegistry | None = None,
        audit_log: AuditLog | None = None,
    ) -> None:
        self._registry = registry if registry is not None else ConditionRegistry()
        self._audit_log = audit_log
        self._records: dict[str, NotificationRecord] = {}
        self._by_run_key: dict[tuple[str, str, str], str] = {}

    # -- InAppNotifier --

    def create_notification(
        self,
        recipient_id: str,
        condition_id: str,
        vague_elapsed_text: str,
        *,
        run_id: Optional[str] = None,
    ) -> str:
        """Persist one notification and return its id.

        Raises:
            ValueError: If ``recipient_id`` or ``vague_elapsed_text`` is blank.
        """
        if not recipient_id.strip():
            raise ValueError("recipient_id must not be blank")
        if not vague_elapsed_text.strip():
            raise ValueError("vague_elapsed_text must not be blank")

        if run_id is not None:
            key = (recipient_id, condition_id, run_id)
            existing = self._by_run_key.get(key)
            if existing is not None:
                return existing

        record = NotificationRecord(
            recipient_id=recipient_id,
            condition_id=condition_id,
            vague_elapsed_text=vague_elapsed_text,
            run_id=run_id,
        )
        self._records[record.notification_id] = record
        if run_id is not None:
            self._by_run_key[(recipient_id, condition_id, run_id)] = record.notification_id
        return record.notification_id

    # -- recipient-side operations --

    def get(self, notification_id: str, recipient_id: str) -> NotificationRecord:
        """Return a copy of one notification owned by ``recipient_id``.

        Raises:
            NotificationNotFoundError: If missing or owned by someone else.
        """
        return self._owned(notification_id, recipient_id).model_copy(deep=True)

    def mark_read(self, notification_id: str, recipient_id: str) -> NotificationRecord:
        """Mark one notification read.  Repeated calls keep the first ``read_at``.

        Raises:
            NotificationNotFoundError: If missing or owned by someone else.
        """
        record = self._owned(notification_id, recipient_id)
        if record.mark_read():
            self._audit_read(record)
        return record.model_copy(deep=True)

    def mark_all_read(self, recipient_id: str) -> int:
        """Mark every unread notification of a recipient read.

        Returns:
            Number of notifications that changed state.
        """
        now = datetime.now(timezone.utc)
        changed = 0
        for record in self._records.values():
            if record.recipient_id == recipient_id and record.mark_read(now):
                self._audit_read(record)
                changed += 1
        return changed

    def list_for_recipient(self, recipient_id: str) -> list[NotificationRecord]:
        """All notifications of a recipient, newest first."""
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.recipient_id == recipient_id
        ]
        return sorted(records, key=lambda r: r.delivered_at, reverse=True)

    def unread_for_recipient(self, recipient_id: str) -> list[NotificationRecord]:
        return [r for r in self.list_for_recipient(recipient_id) if not r.is_read]

    def unread_count(self, recipient_id: str) -> int:
        return len(self.unread_for_recipient(recipient_id))

    def render_alert(self, record: NotificationRecord) -> tuple[str, str]:
        """Return the ``(title, body)`` the recipient sees for a record."""
        condition = self._registry.resolve(record.condition_id)
        return compose_in_app_alert(condition, record.vague_elapsed_text)

    def __len__(self) -> int:
        return len(self._records)

    # -- helpers --

    def _owned(self, notification_id: str, recipient_id: str) -> NotificationRecord:
        record = self._records.get(notification_id)
        if record is None or record.recipient_id != recipient_id:
            raise NotificationNotFoundError(
                f"No notification '{notification_id}' for recipient '{recipient_id}'"
            )
        return record

    def _audit_read(self, record: NotificationRecord) -> None:
        logger.info("notification.read", notification_id=record.notification_id)
        if self._audit_log is None or record.run_id is None:
            return
        self._audit_log.record(
            run_id=record.run_id,
            event_type=AuditEventType.NOTIFICATION_READ,
            actor_id=record.recipient_id,
            actor_role="RECIPIENT",
            target_entity=record.notification_id,
        )
