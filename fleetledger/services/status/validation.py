from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from fleetledger.domain.conditions import CONDITION_UNKNOWN, Condition


REASON_INCOMPLETE_OR_INDETERMINATE = "incomplete_or_indeterminate"
REASON_STALE_GENERATION = "stale_generation"


@dataclass(frozen=True)
class Rejection:
    # Explain why a report was accepted but discarded; never an error for the caller.
    reason: str
    missing: tuple[str, ...] = ()
    indeterminate: tuple[str, ...] = ()

    def describe(self) -> str:
        parts = []
        if self.missing:
            parts.append("missing: " + ", ".join(self.missing))
        if self.indeterminate:
            parts.append("unknown: " + ", ".join(self.indeterminate))
        return "; ".join(parts) or self.reason


def check_mandatory_conditions(
    conditions: Sequence[Condition], mandatory_types: Iterable[str]
) -> Rejection | None:
    # Every mandatory type must be present and report a definite status.
    by_type = {condition.type: condition for condition in conditions}
    missing: list[str] = []
    indeterminate: list[str] = []
    for condition_type in sorted(set(mandatory_types)):
        condition = by_type.get(condition_type)
        if condition is None:
            missing.append(condition_type)
        elif condition.status == CONDITION_UNKNOWN:
            indeterminate.append(condition_type)
    if missing or indeterminate:
        return Rejection(
            reason=REASON_INCOMPLETE_OR_INDETERMINATE,
            missing=tuple(missing),
            indeterminate=tuple(indeterminate),
        )
    return None


class MandatoryConditionValidator:
    """Apply per-kind mandatory condition sets to incoming reports.

    The ``kind -> condition types`` table is injected so that tests and
    deployments can supply synthetic sets; kinds missing from the table fall
    back to ``default``.
    """

    def __init__(
        self,
        mandatory_by_kind: Mapping[str, Iterable[str]],
        *,
        default: Iterable[str] = (),
    ) -> None:
        self._mandatory_by_kind = {kind: frozenset(types) for kind, types in mandatory_by_kind.items()}
        self._default = frozenset(default)

    def mandatory_for(self, kind: str) -> frozenset[str]:
        return self._mandatory_by_kind.get(kind, self._default)

    def validate(self, kind: str, conditions: Sequence[Condition]) -> Rejection | None:
        return check_mandatory_conditions(conditions, self.mandatory_for(kind))
