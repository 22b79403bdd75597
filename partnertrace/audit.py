"""
Append-Only, Tamper-Evident Fan-out Audit Trail (Hash-Chained).

Every step of a contact-trace fan-out -- the request, each condition
resolution, each in-app / push / SMS dispatch and its outcome, each manual
follow-up item -- is recorded as an append-only audit entry.  Entries are
linked through a SHA-256 hash chain: modifying any entry after the fact
breaks ``verify_chain()``.

**Run scoping:**  Queries and exports are scoped by ``run_id``.  One run's
trail never leaks into the export of another.

**Redaction:**  Exports pass every metadata dictionary through
``redact_personal_data()``.  Names, phone numbers, email addresses and
literal dates are replaced before the bundle leaves the process.
"""

from __future__ import annotations

import enum
import hashlib
import json
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Audit event types
# ---------------------------------------------------------------------------

class AuditEventType(str, enum.Enum):
    """Auditable steps of a fan-out run and of the notification store."""

    # Run lifecycle
    FAN_OUT_STARTED = "FAN_OUT_STARTED"
    FAN_OUT_COMPLETED = "FAN_OUT_COMPLETED"

    # Contact resolution
    CONDITION_RESOLVED = "CONDITION_RESOLVED"
    CONDITION_SKIPPED = "CONDITION_SKIPPED"

    # Delivery
    IN_APP_NOTIFICATION_CREATED = "IN_APP_NOTIFICATION_CREATED"
    IN_APP_NOTIFICATION_FAILED = "IN_APP_NOTIFICATION_FAILED"
    PUSH_TRIGGERED = "PUSH_TRIGGERED"
    PUSH_FAILED = "PUSH_FAILED"
    SMS_SENT = "SMS_SENT"
    SMS_FAILED = "SMS_FAILED"
    MANUAL_FOLLOW_UP = "MANUAL_FOLLOW_UP"

    # Recipient side
    NOTIFICATION_READ = "NOTIFICATION_READ"


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class AuditEntry(BaseModel):
    """One step of a fan-out run, linked to the entry before it."""

    entry_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Entry identifier (UUID4).",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the step happened (UTC).",
    )
    run_id: str = Field(
        ...,
        description="Fan-out run this entry belongs to.  Scopes queries and exports.",
    )
    actor_id: str = Field(
        default="SYSTEM",
        description="Who acted: the reporting user, a recipient, or SYSTEM.",
    )
    actor_role: str = Field(
        default="SYSTEM",
        description="REPORTER, RECIPIENT or SYSTEM.",
    )
    event_type: AuditEventType = Field(..., description="What happened.")
    target_entity: str = Field(
        default="",
        description="Contact id, notification id or condition id the step concerns.",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data.  Must not contain message bodies.",
    )
    previous_hash: str = Field(
        default="",
        description="SHA-256 of the preceding entry; empty for the first entry.",
    )

    def canonical_bytes(self) -> bytes:
        """Sorted-key JSON of every field, used as hash input."""
        payload = self.model_dump(mode="json")
        return json.dumps(payload, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# Personal-data redaction
# ---------------------------------------------------------------------------

_PERSONAL_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("DATE", re.compile(r"\b\d{4}-\d{2}-\d{2}\b")),
    ("PHONE", re.compile(r"(?<!\w)\+?\d[\d\s().-]{7,}\d\b")),
    ("EMAIL", re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b")),
]

# Keys whose values are always fully redacted.
_PERSONAL_KEYS = frozenset({
    "name", "display_name", "full_name", "phone", "phone_number",
    "email", "address", "encounter_date", "test_date", "body",
})


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        for kind, pattern in _PERSONAL_PATTERNS:
            value = pattern.sub(f"[REDACTED-{kind}]", value)
        return value
    if isinstance(value, dict):
        return redact_personal_data(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    return value


def redact_personal_data(metadata: dict[str, Any]) -> dict[str, Any]:
    """Replace personal data in a metadata dictionary with markers.

    Known sensitive keys become ``[REDACTED]``; dates, phone numbers and
    email addresses inside other values become ``[REDACTED-<KIND>]``.
    Nested dictionaries and lists are handled recursively.
    """
    return {
        key: "[REDACTED]" if key.lower() in _PERSONAL_KEYS else _redact_value(value)
        for key, value in metadata.items()
    }


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only audit log with SHA-256 hash chaining.

    Entries can only be added.  ``verify_chain()`` recomputes every link and
    reports the first one that no longer matches.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._hashes: list[str] = []

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Link ``entry`` to the current head and store it."""
        entry.previous_hash = self._hashes[-1] if self._hashes else ""
        self._entries.append(entry)
        self._hashes.append(entry.compute_hash())
        return entry

    def record(
        self,
        run_id: str,
        event_type: AuditEventType,
        actor_id: str = "SYSTEM",
        actor_role: str = "SYSTEM",
        target_entity: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Build and append an entry in one call."""
        return self.append(AuditEntry(
            run_id=run_id,
            actor_id=actor_id,
            actor_role=actor_role,
            event_type=event_type,
            target_entity=target_entity,
            metadata=metadata or {},
        ))

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the chain from the start.

        Returns:
            ``(True, None)`` when intact, otherwise ``(False, index)`` of the
            first entry whose link or stored hash no longer matches.
        """
        expected_previous = ""
        for index, (entry, stored_hash) in enumerate(zip(self._entries, self._hashes)):
            actual_hash = entry.compute_hash()
            if entry.previous_hash != expected_previous or actual_hash != stored_hash:
                return (False, index)
            expected_previous = actual_hash
        return (True, None)

    def query(
        self,
        run_id: str,
        event_type: Optional[AuditEventType] = None,
        target_entity: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        """Return copies of one run's entries that pass every given filter."""

        def wanted(entry: AuditEntry) -> bool:
            return (
                entry.run_id == run_id
                and (event_type is None or entry.event_type == event_type)
                and (target_entity is None or entry.target_entity == target_entity)
                and (time_start is None or entry.timestamp >= time_start)
                and (time_end is None or entry.timestamp <= time_end)
            )

        return [e.model_copy(deep=True) for e in self._entries if wanted(e)]

    def export_for_review(self, run_id: str) -> dict[str, Any]:
        """Redacted, JSON-serializable bundle of one run's trail."""
        entries = []
        for entry in self.query(run_id):
            exported = entry.model_dump(mode="json")
            exported["metadata"] = redact_personal_data(entry.metadata)
            entries.append(exported)

        intact, broken_at = self.verify_chain()
        return {
            "export_metadata": {
                "run_id": run_id,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "entry_count": len(entries),
                "chain_integrity": "VALID" if intact else f"BROKEN_AT_INDEX_{broken_at}",
            },
            "entries": entries,
        }

    def __len__(self) -> int:
        return len(self._entries)
