"""Condition documents shared by adapter statuses and resources.

A condition document is an ordered list of typed observations stored as a
JSONB array. Adapter-level conditions may be ``True``, ``False`` or
``Unknown``; resource-level aggregate conditions are ``True``/``False`` only.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
import re
from typing import Any, Iterable, Sequence

from fleetledger.core.errors import (
    DuplicateConditionTypeError,
    InvalidConditionStatusError,
    InvalidConditionTypeError,
)


CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

ADAPTER_CONDITION_STATUSES = frozenset({CONDITION_TRUE, CONDITION_FALSE, CONDITION_UNKNOWN})
RESOURCE_CONDITION_STATUSES = frozenset({CONDITION_TRUE, CONDITION_FALSE})

CONDITION_TYPE_AVAILABLE = "Available"
CONDITION_TYPE_APPLIED = "Applied"
CONDITION_TYPE_HEALTH = "Health"
CONDITION_TYPE_READY = "Ready"

# PascalCase, no leading digit, no separators; doubles as the injection guard for query keys.
CONDITION_TYPE_PATTERN = re.compile(r"^[A-Z][a-zA-Z0-9]*$")


def is_valid_condition_type(value: str) -> bool:
    return isinstance(value, str) and CONDITION_TYPE_PATTERN.fullmatch(value) is not None


def format_timestamp(value: datetime) -> str:
    # Persist timestamps as UTC ISO-8601 so JSON comparisons stay lexical.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Condition:
    type: str
    status: str
    reason: str | None = None
    message: str | None = None
    last_transition_time: datetime | None = None
    # Resource-level bookkeeping; adapter conditions leave these unset.
    observed_generation: int | None = None
    created_time: datetime | None = None
    last_updated_time: datetime | None = None

    def with_transition_time(self, value: datetime | None) -> "Condition":
        return replace(self, last_transition_time=value)

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.message is not None:
            payload["message"] = self.message
        if self.observed_generation is not None:
            payload["observed_generation"] = self.observed_generation
        if self.last_transition_time is not None:
            payload["last_transition_time"] = format_timestamp(self.last_transition_time)
        if self.created_time is not None:
            payload["created_time"] = format_timestamp(self.created_time)
        if self.last_updated_time is not None:
            payload["last_updated_time"] = format_timestamp(self.last_updated_time)
        return payload

    @classmethod
    def from_json(cls, raw: Any) -> "Condition":
        # Raise ValueError for anything that is not a well-formed stored condition.
        if not isinstance(raw, dict):
            raise ValueError("Condition must be an object")
        condition_type = raw.get("type")
        status = raw.get("status")
        if not isinstance(condition_type, str) or not condition_type:
            raise ValueError("Condition type is missing")
        if not isinstance(status, str):
            raise ValueError("Condition status is missing")
        observed_generation = raw.get("observed_generation")
        if observed_generation is not None and not isinstance(observed_generation, int):
            raise ValueError("Condition observed_generation must be an integer")
        return cls(
            type=condition_type,
            status=status,
            reason=_optional_text(raw.get("reason")),
            message=_optional_text(raw.get("message")),
            last_transition_time=_optional_timestamp(raw.get("last_transition_time")),
            observed_generation=observed_generation,
            created_time=_optional_timestamp(raw.get("created_time")),
            last_updated_time=_optional_timestamp(raw.get("last_updated_time")),
        )


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("Condition reason/message must be text")
    return value


def _optional_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return parse_timestamp(value)


def parse_conditions(raw: Any) -> list[Condition]:
    """Decode a stored condition document.

    Raises ValueError when the document is not a list of well-formed
    conditions; callers decide whether that is fatal.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("Condition document must be a list")
    return [Condition.from_json(item) for item in raw]


def dump_conditions(conditions: Iterable[Condition]) -> list[dict[str, Any]]:
    return [condition.to_json() for condition in conditions]


def index_by_type(conditions: Iterable[Condition]) -> dict[str, Condition]:
    return {condition.type: condition for condition in conditions}


def validate_condition_document(
    conditions: Sequence[Condition],
    *,
    allowed_statuses: frozenset[str] = ADAPTER_CONDITION_STATUSES,
) -> None:
    # Enforce type pattern, status enum, and per-document type uniqueness.
    seen: set[str] = set()
    for condition in conditions:
        if not is_valid_condition_type(condition.type):
            raise InvalidConditionTypeError(
                f"condition type '{condition.type}' is invalid: must be PascalCase (e.g., Ready, Available)",
                field="type",
                value=condition.type,
            )
        if condition.status not in allowed_statuses:
            raise InvalidConditionStatusError(
                f"condition status '{condition.status}' is invalid: must be one of "
                + ", ".join(sorted(allowed_statuses)),
                field="status",
                value=condition.status,
                condition_type=condition.type,
            )
        if condition.type in seen:
            raise DuplicateConditionTypeError(
                f"condition type '{condition.type}' appears more than once",
                field="type",
                value=condition.type,
            )
        seen.add(condition.type)
