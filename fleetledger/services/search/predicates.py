from __future__ import annotations

from typing import Any

from sqlalchemy import cast, func, literal
from sqlalchemy.dialects.postgresql import JSONB, JSONPATH
from sqlalchemy.sql import ColumnElement

from fleetledger.core.errors import (
    InvalidConditionStatusError,
    InvalidConditionTypeError,
    UnsupportedOperatorError,
)
from fleetledger.domain.conditions import ADAPTER_CONDITION_STATUSES, is_valid_condition_type
from fleetledger.domain.models import Resource
from fleetledger.services.search.filters import OP_EQ


def condition_json_path(condition_type: str) -> str:
    # Bound as a parameter; the type is validated before it reaches the path.
    return f'$[*] ? (@.type == "{condition_type}")'


def build_condition_predicate(
    condition_type: str,
    operator: str,
    value: Any,
    *,
    column: Any = None,
) -> ColumnElement[bool]:
    """Build ``status.conditions.<Type> = '<Status>'`` as a storage predicate.

    Renders as::

        jsonb_path_query_first(status_conditions, CAST(:path AS JSONPATH)) ->> 'status' = :value

    The type is validated against the PascalCase pattern before it is placed
    in the JSON path, and both the path and the value travel as bound
    parameters.
    """
    if not is_valid_condition_type(condition_type):
        raise InvalidConditionTypeError(
            f"condition type '{condition_type}' is invalid: must be PascalCase (e.g., Ready, Available)",
            field=f"status.conditions.{condition_type}",
            value=condition_type,
        )
    if operator != OP_EQ:
        raise UnsupportedOperatorError(
            "only equality operator (=) is supported for condition queries",
            field=f"status.conditions.{condition_type}",
            operator=operator,
        )
    if not isinstance(value, str) or value not in ADAPTER_CONDITION_STATUSES:
        raise InvalidConditionStatusError(
            f"condition status '{value}' is invalid: must be True, False, or Unknown",
            field=f"status.conditions.{condition_type}",
            value=str(value),
        )
    target = column if column is not None else Resource.status_conditions
    match = func.jsonb_path_query_first(
        target,
        cast(literal(condition_json_path(condition_type)), JSONPATH),
        type_=JSONB,
    )
    return match["status"].astext == literal(value)
