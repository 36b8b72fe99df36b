from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import String, and_, not_, or_, true
from sqlalchemy.sql import ColumnElement

from fleetledger.core.errors import InvalidFieldError, UnsupportedConditionPlacementError
from fleetledger.domain.models import Resource
from fleetledger.services.search.fields import (
    DEFAULT_COLUMN_FIELDS,
    FIELD_CONDITION,
    FieldMapping,
    field_expression,
    map_field,
)
from fleetledger.services.search.filters import (
    OP_EQ,
    OP_GE,
    OP_GT,
    OP_ILIKE,
    OP_IN,
    OP_LE,
    OP_LIKE,
    OP_LT,
    OP_NE,
    OP_NOT_IN,
    OP_NOT_LIKE,
    AlwaysTrue,
    BooleanOp,
    Comparison,
    Node,
    Not,
    parse_filter,
)
from fleetledger.services.search.predicates import build_condition_predicate


@dataclass(frozen=True)
class CompiledSearch:
    # Remaining field filter plus condition predicates lifted out of the tree.
    where: ColumnElement[bool] | None
    condition_predicates: tuple[ColumnElement[bool], ...] = ()

    def clause(self) -> ColumnElement[bool] | None:
        parts = [*self.condition_predicates]
        if self.where is not None:
            parts.insert(0, self.where)
        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        return and_(*parts)


class SearchQueryCompiler:
    """Compile parsed search trees into SQLAlchemy filters on resources.

    Condition terms (``status.conditions.<Type>``) are extracted first and
    ANDed with the rest of the filter. A condition term below ``or`` or
    ``not`` is refused because lifting it out would change the query's
    meaning. Every other leaf goes through the field mapper; all rejected
    fields are reported together in one ``InvalidFieldError``.
    """

    def __init__(
        self,
        *,
        model: Any = Resource,
        columns: Mapping[str, str] = DEFAULT_COLUMN_FIELDS,
        max_length: int | None = None,
    ) -> None:
        self._model = model
        self._columns = columns
        self._max_length = max_length

    def compile_string(self, search: str | None) -> CompiledSearch:
        if search is None or not search.strip():
            return CompiledSearch(where=None)
        return self.compile(parse_filter(search, max_length=self._max_length))

    def compile(self, tree: Node | None) -> CompiledSearch:
        if tree is None:
            return CompiledSearch(where=None)
        remaining, conditions = self.extract_conditions(tree)
        rejected: list[FieldMapping] = []
        where = self._translate(remaining, rejected)
        if rejected:
            raise InvalidFieldError(
                "; ".join(mapping.reason or mapping.path for mapping in rejected),
                fields=[mapping.path for mapping in rejected],
            )
        if isinstance(remaining, AlwaysTrue):
            where = None
        return CompiledSearch(where=where, condition_predicates=tuple(conditions))

    def extract_conditions(self, tree: Node) -> tuple[Node, list[ColumnElement[bool]]]:
        conditions: list[ColumnElement[bool]] = []
        remaining = self._extract(tree, conditions, conjunctive=True)
        return remaining, conditions

    def _extract(self, node: Node, conditions: list[ColumnElement[bool]], *, conjunctive: bool) -> Node:
        if isinstance(node, Comparison):
            mapping = map_field(node.field, columns=self._columns)
            if mapping.kind != FIELD_CONDITION:
                return node
            if not conjunctive:
                raise UnsupportedConditionPlacementError(
                    f"{mapping.path} can only be combined with other filters using AND",
                    field=mapping.path,
                )
            conditions.append(build_condition_predicate(mapping.key or "", node.operator, node.value))
            return AlwaysTrue()
        if isinstance(node, BooleanOp):
            nested = conjunctive and node.operator == "and"
            operands = tuple(self._extract(child, conditions, conjunctive=nested) for child in node.operands)
            kept = tuple(child for child in operands if not isinstance(child, AlwaysTrue))
            if not kept:
                return AlwaysTrue()
            if len(kept) == 1:
                return kept[0]
            return BooleanOp(operator=node.operator, operands=kept)
        if isinstance(node, Not):
            return Not(self._extract(node.operand, conditions, conjunctive=False))
        return node

    def _translate(self, node: Node, rejected: list[FieldMapping]) -> ColumnElement[bool]:
        if isinstance(node, AlwaysTrue):
            return true()
        if isinstance(node, BooleanOp):
            parts = [self._translate(child, rejected) for child in node.operands]
            return and_(*parts) if node.operator == "and" else or_(*parts)
        if isinstance(node, Not):
            return not_(self._translate(node.operand, rejected))
        mapping = map_field(node.field, columns=self._columns)
        if mapping.rejected:
            rejected.append(mapping)
            return true()
        column = field_expression(mapping, self._model)
        return _compare(column, node, text_only=isinstance(column.type, String))


def _compare(column: ColumnElement[Any], node: Comparison, *, text_only: bool) -> ColumnElement[bool]:
    value = node.value
    if text_only:
        # Text columns and label values compare numbers by their literal text.
        value = tuple(str(item) for item in value) if isinstance(value, tuple) else str(value)
    operator = node.operator
    if operator == OP_IN:
        return column.in_(value if isinstance(value, tuple) else (value,))
    if operator == OP_NOT_IN:
        return column.not_in(value if isinstance(value, tuple) else (value,))
    if operator == OP_EQ:
        return column == value
    if operator == OP_NE:
        return column != value
    if operator == OP_LT:
        return column < value
    if operator == OP_LE:
        return column <= value
    if operator == OP_GT:
        return column > value
    if operator == OP_GE:
        return column >= value
    if operator == OP_LIKE:
        return column.like(value)
    if operator == OP_ILIKE:
        return column.ilike(value)
    if operator == OP_NOT_LIKE:
        return column.not_like(value)
    raise ValueError(f"Unsupported operator: {operator}")
