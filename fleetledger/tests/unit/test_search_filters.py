from __future__ import annotations

import pytest

from fleetledger.core.errors import FilterSyntaxError
from fleetledger.services.search.filters import (
    OP_EQ,
    OP_ILIKE,
    OP_IN,
    OP_NE,
    OP_NOT_IN,
    OP_NOT_LIKE,
    BooleanOp,
    Comparison,
    Not,
    parse_filter,
)


def test_single_comparison() -> None:
    assert parse_filter("name = 'prod-east'") == Comparison(field="name", operator=OP_EQ, value="prod-east")


def test_and_binds_tighter_than_or() -> None:
    tree = parse_filter("name = 'a' or name = 'b' AND labels.tier = 'gold'")
    assert isinstance(tree, BooleanOp) and tree.operator == "or"
    assert tree.operands[0] == Comparison(field="name", operator=OP_EQ, value="a")
    inner = tree.operands[1]
    assert isinstance(inner, BooleanOp) and inner.operator == "and"
    assert len(inner.operands) == 2


def test_nested_and_chains_are_flattened() -> None:
    tree = parse_filter("name = 'a' and (labels.x = '1' and labels.y = '2')")
    assert isinstance(tree, BooleanOp)
    assert tree.operator == "and"
    assert [operand.field for operand in tree.operands] == ["name", "labels.x", "labels.y"]


def test_not_and_list_operators() -> None:
    tree = parse_filter("not labels.tier in ('gold', 'silver') and id not in ('a') and name not like 'x%'")
    assert isinstance(tree, BooleanOp)
    assert tree.operands[0] == Not(Comparison(field="labels.tier", operator=OP_IN, value=("gold", "silver")))
    assert tree.operands[1] == Comparison(field="id", operator=OP_NOT_IN, value=("a",))
    assert tree.operands[2] == Comparison(field="name", operator=OP_NOT_LIKE, value="x%")


def test_values_and_operator_aliases() -> None:
    assert parse_filter("labels.count >= 3").value == 3
    assert parse_filter("labels.ratio < 0.5").value == 0.5
    assert parse_filter("name <> 'a'").operator == OP_NE
    assert parse_filter("name ILIKE 'Prod%'").operator == OP_ILIKE
    # Doubled quotes escape a single quote inside a literal.
    assert parse_filter("name = 'it''s'").value == "it's"


def test_injection_text_stays_inside_the_literal() -> None:
    tree = parse_filter("name = 'x''; DROP TABLE resources; --'")
    assert tree == Comparison(field="name", operator=OP_EQ, value="x'; DROP TABLE resources; --")


@pytest.mark.parametrize(
    "search",
    [
        "",
        "name =",
        "name 'a'",
        "(name = 'a'",
        "name = 'a')",
        "name = 'unterminated",
        "name = 'a' and",
        "name in 'a'",
        "name ; 'a'",
        "name like 3",
    ],
)
def test_syntax_errors(search: str) -> None:
    with pytest.raises(FilterSyntaxError):
        parse_filter(search)


def test_syntax_error_reports_position() -> None:
    with pytest.raises(FilterSyntaxError) as excinfo:
        parse_filter("name = 'a' xor name = 'b'")
    assert excinfo.value.details["position"] == 11


def test_max_length_is_enforced() -> None:
    with pytest.raises(FilterSyntaxError):
        parse_filter("name = '" + "a" * 100 + "'", max_length=50)
