from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Mapping

from sqlalchemy.sql import ColumnElement


FIELD_COLUMN = "column"
FIELD_LABEL = "label"
FIELD_CONDITION = "condition"
FIELD_REJECTED = "rejected"

LABEL_PREFIX = "labels."
CONDITION_PREFIX = "status.conditions."

# Label keys become JSON path keys; keep them to a conservative alphabet.
LABEL_KEY_PATTERN = re.compile(r"^[a-z0-9_]+$")

# External field name -> model attribute.
DEFAULT_COLUMN_FIELDS: Mapping[str, str] = {
    "id": "id",
    "name": "name",
}


@dataclass(frozen=True)
class FieldMapping:
    kind: str
    path: str
    column: str | None = None
    key: str | None = None
    reason: str | None = None

    @property
    def rejected(self) -> bool:
        return self.kind == FIELD_REJECTED


def map_field(path: str, *, columns: Mapping[str, str] = DEFAULT_COLUMN_FIELDS) -> FieldMapping:
    """Classify an external dotted field path.

    ``status.conditions.<Type>`` is only marked here; type and status
    validation belong to the condition predicate builder.
    """
    name = path.strip()
    if name.startswith(CONDITION_PREFIX):
        return FieldMapping(kind=FIELD_CONDITION, path=name, key=name[len(CONDITION_PREFIX):])
    if name.startswith(LABEL_PREFIX):
        key = name[len(LABEL_PREFIX):]
        if not LABEL_KEY_PATTERN.fullmatch(key):
            return FieldMapping(
                kind=FIELD_REJECTED,
                path=name,
                reason=f"label key '{key}' is invalid: must contain only lowercase letters, digits, and underscores",
            )
        return FieldMapping(kind=FIELD_LABEL, path=name, key=key)
    column = columns.get(name)
    if column is not None:
        return FieldMapping(kind=FIELD_COLUMN, path=name, column=column)
    if name == "spec" or name.startswith("spec."):
        return FieldMapping(kind=FIELD_REJECTED, path=name, reason="spec is not a valid search field")
    return FieldMapping(kind=FIELD_REJECTED, path=name, reason=f"{name} is not a valid field name")


def field_expression(mapping: FieldMapping, model: Any) -> ColumnElement[Any]:
    # Label keys are bound as parameters of the ->> operator, never inlined.
    if mapping.kind == FIELD_COLUMN and mapping.column is not None:
        return getattr(model, mapping.column)
    if mapping.kind == FIELD_LABEL and mapping.key is not None:
        return model.labels[mapping.key].astext
    raise ValueError(f"Field {mapping.path} has no column expression")
