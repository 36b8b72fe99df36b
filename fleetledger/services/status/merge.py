from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Sequence

from fleetledger.domain.conditions import Condition, index_by_type, parse_conditions


logger = logging.getLogger(__name__)


def load_previous_conditions(raw: Any) -> list[Condition] | None:
    # Corrupted history degrades to "no previous document" instead of blocking new writes.
    try:
        return parse_conditions(raw)
    except (ValueError, TypeError):
        logger.warning("adapter_status.previous_conditions_unreadable", exc_info=True)
        return None


def merge_conditions(
    previous: Sequence[Condition] | None,
    incoming: Sequence[Condition],
    now: datetime,
) -> list[Condition]:
    """Merge an incoming condition set over the previous one.

    The incoming set fully replaces the previous one (types only present in
    ``previous`` are dropped, incoming order is kept). The only state carried
    over is ``last_transition_time``: kept when a type reports the same
    status again, reset to ``now`` when the status changed or the type is new.
    """
    previous_by_type = index_by_type(previous or ())
    merged: list[Condition] = []
    for condition in incoming:
        prior = previous_by_type.get(condition.type)
        if prior is not None and prior.status == condition.status and prior.last_transition_time is not None:
            merged.append(condition.with_transition_time(prior.last_transition_time))
        else:
            merged.append(condition.with_transition_time(now))
    return merged
