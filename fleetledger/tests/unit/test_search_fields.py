from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql

from fleetledger.domain.models import Resource
from fleetledger.services.search.fields import (
    FIELD_COLUMN,
    FIELD_CONDITION,
    FIELD_LABEL,
    FIELD_REJECTED,
    field_expression,
    map_field,
)


def test_whitelisted_columns_map_directly() -> None:
    mapping = map_field("name")
    assert mapping.kind == FIELD_COLUMN
    assert mapping.column == "name"


def test_label_keys_map_to_json_lookup() -> None:
    mapping = map_field("labels.environment")
    assert mapping.kind == FIELD_LABEL
    assert mapping.key == "environment"
    compiled = field_expression(mapping, Resource).compile(dialect=postgresql.dialect())
    assert "->>" in str(compiled)
    assert "environment" in compiled.params.values()
    assert "environment" not in str(compiled)


@pytest.mark.parametrize("path", ["labels.Environment", "labels.env-name", "labels.", "labels.a'b"])
def test_invalid_label_keys_are_rejected(path: str) -> None:
    mapping = map_field(path)
    assert mapping.rejected
    assert "label key" in (mapping.reason or "")


def test_condition_paths_are_marked_not_validated() -> None:
    mapping = map_field("status.conditions.ready")
    assert mapping.kind == FIELD_CONDITION
    assert mapping.key == "ready"


@pytest.mark.parametrize("path", ["spec", "spec.region", "generation", "tenant_id", "status"])
def test_unknown_and_spec_fields_are_rejected(path: str) -> None:
    mapping = map_field(path)
    assert mapping.kind == FIELD_REJECTED


def test_custom_column_table() -> None:
    mapping = map_field("owner", columns={"owner": "owner_id"})
    assert mapping.kind == FIELD_COLUMN
    assert mapping.column == "owner_id"
    assert map_field("name", columns={"owner": "owner_id"}).rejected
