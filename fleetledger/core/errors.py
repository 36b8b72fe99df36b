from __future__ import annotations

from typing import Any


class FleetError(Exception):
    """Base error for fleetledger."""

    code = "FLEET_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict[str, Any]:
        # Shape errors like HTTPException detail payloads so the envelope handler can split them.
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ConditionValidationError(FleetError):
    """Incoming condition document is malformed."""

    code = "INVALID_CONDITION"


class InvalidConditionTypeError(ConditionValidationError):
    """Condition type is not PascalCase."""

    code = "INVALID_CONDITION_TYPE"


class InvalidConditionStatusError(ConditionValidationError):
    """Condition status is not one of True, False, Unknown."""

    code = "INVALID_CONDITION_STATUS"


class DuplicateConditionTypeError(ConditionValidationError):
    """Condition type repeated within one document."""

    code = "DUPLICATE_CONDITION_TYPE"


class SearchError(FleetError):
    """Search expression cannot be compiled."""

    code = "INVALID_SEARCH"


class FilterSyntaxError(SearchError):
    """Search string does not parse."""

    code = "SEARCH_SYNTAX_ERROR"


class InvalidFieldError(SearchError):
    """One or more search fields are not filterable."""

    code = "INVALID_SEARCH_FIELD"


class UnsupportedOperatorError(SearchError):
    """Operator is not supported for the field."""

    code = "UNSUPPORTED_SEARCH_OPERATOR"


class UnsupportedConditionPlacementError(SearchError):
    """Condition filter appears under OR or NOT."""

    code = "UNSUPPORTED_CONDITION_PLACEMENT"


class UnknownResourceKindError(FleetError):
    """Resource kind is not registered."""

    code = "UNKNOWN_RESOURCE_KIND"


class ReconcileStorageError(FleetError):
    """Storage failure while persisting an adapter status."""

    code = "STORAGE_ERROR"


class ReconcileTimeoutError(FleetError):
    """Adapter status reconciliation exceeded its deadline."""

    code = "RECONCILE_TIMEOUT"
