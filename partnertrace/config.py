"""
Condition Registry and Fan-out Policy for partnertrace.

Every reportable condition carries its own lookback window: the number of
days before the test date within which an encounter counts as a possible
exposure.  The registry maps condition identifiers to those windows and to
the wording used in recipient-facing messages.

**Unknown conditions never fail.**  Looking up an identifier that is not
registered yields a generic condition with the default window.  Notifying
too many partners is preferred over silently notifying none.

The table and the fan-out policy can be loaded from YAML so that a
deployment can add conditions or adjust windows without a code change.
"""

from __future__ import annotations

import copy
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_LOOKBACK_DAYS = 30


# ---------------------------------------------------------------------------
# Condition model
# ---------------------------------------------------------------------------

class Condition(BaseModel):
    """A reportable health condition and its lookback window."""

    condition_id: str = Field(
        ...,
        min_length=1,
        description="Stable string key (e.g. 'chlamydia').",
    )
    label: str = Field(
        ...,
        min_length=1,
        description="Display label used in the in-app alert.",
    )
    sms_label: str = Field(
        default="",
        description=(
            "Wording used inside the SMS sentence ('has tested positive for "
            "<sms_label>').  Falls back to ``label`` when empty."
        ),
    )
    lookback_days: int = Field(
        default=DEFAULT_LOOKBACK_DAYS,
        ge=1,
        le=365,
        description="How many days back from the test date to search for exposed contacts.",
    )

    @field_validator("condition_id")
    @classmethod
    def normalize_condition_id(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("condition_id must not be blank")
        return v

    @property
    def message_label(self) -> str:
        return self.sms_label or self.label


DEFAULT_CONDITIONS: list[Condition] = [
    Condition(condition_id="chlamydia", label="Chlamydia", lookback_days=30),
    Condition(condition_id="gonorrhea", label="Gonorrhea", sms_label="Gonorrhoea", lookback_days=30),
    Condition(condition_id="syphilis", label="Syphilis", lookback_days=90),
    Condition(condition_id="hiv", label="HIV", lookback_days=90),
    Condition(condition_id="herpes", label="Herpes", lookback_days=30),
    Condition(condition_id="hpv", label="HPV", lookback_days=90),
    Condition(condition_id="mpox", label="Mpox", lookback_days=21),
    Condition(condition_id="other", label="Other STI", sms_label="an STI", lookback_days=30),
]


# ---------------------------------------------------------------------------
# Fan-out policy
# ---------------------------------------------------------------------------

class FanOutPolicy(BaseModel):
    """Deployment-level settings for the fan-out engine."""

    default_lookback_days: int = Field(
        default=DEFAULT_LOOKBACK_DAYS,
        ge=1,
        le=365,
        description="Window used for condition identifiers that are not registered.",
    )
    sms_brand: str = Field(
        default="GLORY",
        min_length=1,
        description="Product name that opens every SMS ('<brand> Health Alert: ...').",
    )
    fallback_elapsed_text: str = Field(
        default="recently",
        min_length=1,
        description=(
            "Phrase substituted when a resolver-supplied elapsed-time phrase is "
            "missing or would reveal an exact date."
        ),
    )
    notify_push: bool = Field(
        default=True,
        description="Whether to trigger a push notification after each in-app record.",
    )


DEFAULT_POLICY = FanOutPolicy()


# ---------------------------------------------------------------------------
# Condition registry
# ---------------------------------------------------------------------------

class ConditionRegistry:
    """In-memory registry of reportable conditions keyed by ``condition_id``.

    Lookups through ``resolve()`` are total: an unregistered identifier maps
    to a generic condition that uses the policy's default window and the
    wording of the ``other`` entry.
    """

    def __init__(
        self,
        conditions: list[Condition] | None = None,
        default_lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self._conditions: dict[str, Condition] = {}
        self._default_lookback_days = default_lookback_days
        for condition in DEFAULT_CONDITIONS if conditions is None else conditions:
            self.register(condition)

    def register(self, condition: Condition) -> None:
        """Register a new condition.

        Raises:
            ValueError: If ``condition_id`` is already registered.
        """
        if condition.condition_id in self._conditions:
            raise ValueError(
                f"Condition '{condition.condition_id}' already registered. "
                "Use update() to modify an existing condition."
            )
        self._conditions[condition.condition_id] = copy.deepcopy(condition)

    def update(self, condition: Condition) -> None:
        """Replace an existing condition.

        Raises:
            KeyError: If the condition is not registered.
        """
        if condition.condition_id not in self._conditions:
            raise KeyError(
                f"Cannot update: no condition registered as '{condition.condition_id}'"
            )
        self._conditions[condition.condition_id] = copy.deepcopy(condition)

    def get(self, condition_id: str) -> Condition:
        """Strict lookup.

        Raises:
            KeyError: If no condition is registered under ``condition_id``.
        """
        key = _normalize(condition_id)
        if key not in self._conditions:
            raise KeyError(f"No condition registered as '{condition_id}'")
        return copy.deepcopy(self._conditions[key])

    def resolve(self, condition_id: str) -> Condition:
        """Lenient lookup that never fails.

        Unknown identifiers produce a generic condition carrying the
        requested identifier, the default lookback window and generic
        wording.  The raw identifier is never used as message text.
        """
        key = _normalize(condition_id)
        if key in self._conditions:
            return copy.deepcopy(self._conditions[key])

        generic = self._conditions.get("other")
        return Condition(
            condition_id=key or "other",
            label=generic.label if generic else "Other STI",
            sms_label=generic.sms_label if generic else "an STI",
            lookback_days=self._default_lookback_days,
        )

    def lookback_days(self, condition_id: str) -> int:
        """Return the lookback window for a condition (default when unknown)."""
        return self.resolve(condition_id).lookback_days

    def list_conditions(self) -> list[Condition]:
        """Return all registered conditions in registration order."""
        return [copy.deepcopy(c) for c in self._conditions.values()]

    def __len__(self) -> int:
        return len(self._conditions)

    def __contains__(self, condition_id: str) -> bool:
        return _normalize(condition_id) in self._conditions


def _normalize(condition_id: str) -> str:
    return (condition_id or "").strip().lower()


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _read_yaml_mapping(path: str | Path) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a YAML mapping at the top level.")
    return raw


def load_conditions_from_yaml(path: str | Path) -> list[Condition]:
    """Load condition definitions from a YAML file.

    Example YAML structure::

        conditions:
          - condition_id: "chlamydia"
            label: "Chlamydia"
            lookback_days: 30

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any condition fails validation.
    """
    raw = _read_yaml_mapping(path)
    if "conditions" not in raw:
        raise ValueError(
            "YAML file must contain a top-level 'conditions' key with a list of condition objects."
        )

    entries = raw["conditions"]
    if not isinstance(entries, list):
        raise ValueError("'conditions' must be a list of condition objects.")

    conditions: list[Condition] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Condition entry at index {idx} must be a mapping.")
        conditions.append(Condition(**entry))
    return conditions


def load_policy_from_yaml(path: str | Path) -> FanOutPolicy:
    """Load the fan-out policy from the optional top-level ``fan_out`` key.

    A file without a ``fan_out`` key yields the default policy.
    """
    raw = _read_yaml_mapping(path)
    section = raw.get("fan_out")
    if section is None:
        return FanOutPolicy()
    if not isinstance(section, dict):
        raise ValueError("'fan_out' must be a mapping of policy settings.")
    return FanOutPolicy(**section)


def load_registry_from_yaml(path: str | Path) -> ConditionRegistry:
    """Build a ``ConditionRegistry`` from a YAML file's conditions and policy."""
    policy = load_policy_from_yaml(path)
    return ConditionRegistry(
        load_conditions_from_yaml(path),
        default_lookback_days=policy.default_lookback_days,
    )
