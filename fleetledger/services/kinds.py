from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Iterable

from fleetledger.core.config import Settings
from fleetledger.core.errors import UnknownResourceKindError
from fleetledger.domain.conditions import is_valid_condition_type


@dataclass(frozen=True)
class ResourceKind:
    # Describe one resource kind and the status contract its adapters must honour.
    name: str
    plural: str
    mandatory_conditions: frozenset[str]
    owner_kind: str | None = None


class ResourceKindRegistry:
    def __init__(self, kinds: Iterable[ResourceKind]) -> None:
        self._by_name: dict[str, ResourceKind] = {}
        self._by_plural: dict[str, ResourceKind] = {}
        for kind in kinds:
            if kind.name in self._by_name or kind.plural in self._by_plural:
                raise ValueError(f"Duplicate resource kind: {kind.name}")
            self._by_name[kind.name] = kind
            self._by_plural[kind.plural] = kind

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def get(self, name: str) -> ResourceKind:
        kind = self._by_name.get(name)
        if kind is None:
            raise UnknownResourceKindError(f"Unknown resource kind: {name}", kind=name)
        return kind

    def by_plural(self, plural: str) -> ResourceKind:
        kind = self._by_plural.get(plural)
        if kind is None:
            raise UnknownResourceKindError(f"Unknown resource collection: {plural}", kind=plural)
        return kind

    def mandatory_conditions(self) -> dict[str, frozenset[str]]:
        # Lookup table handed to the mandatory-condition validator.
        return {name: kind.mandatory_conditions for name, kind in self._by_name.items()}


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _condition_set(raw: Any, *, kind_name: str) -> frozenset[str]:
    if isinstance(raw, str):
        items = _split_csv(raw)
    elif isinstance(raw, list) and all(isinstance(item, str) for item in raw):
        items = raw
    else:
        raise ValueError(f"mandatory_conditions for {kind_name} must be a list of strings")
    for item in items:
        if not is_valid_condition_type(item):
            raise ValueError(f"Invalid mandatory condition type for {kind_name}: {item}")
    return frozenset(items)


def parse_resource_kinds(raw_json: str, *, default_mandatory: str) -> list[ResourceKind]:
    """Parse the kind table from settings.

    Shape: ``{"Cluster": {"plural": "clusters", "mandatory_conditions": [...],
    "owner_kind": null}}``. Kinds that omit ``mandatory_conditions`` inherit
    ``default_mandatory``.
    """
    try:
        payload = json.loads(raw_json)
    except json.JSONDecodeError as exc:
        raise ValueError("resource_kinds_json must be valid JSON") from exc
    if not isinstance(payload, dict) or not payload:
        raise ValueError("resource_kinds_json must be a non-empty object")
    kinds: list[ResourceKind] = []
    for name, entry in payload.items():
        if not isinstance(entry, dict):
            raise ValueError(f"Resource kind {name} must be an object")
        plural = entry.get("plural") or f"{name.lower()}s"
        mandatory = _condition_set(
            entry.get("mandatory_conditions", default_mandatory), kind_name=name
        )
        kinds.append(
            ResourceKind(
                name=name,
                plural=str(plural),
                mandatory_conditions=mandatory,
                owner_kind=entry.get("owner_kind"),
            )
        )
    return kinds


def registry_from_settings(settings: Settings) -> ResourceKindRegistry:
    return ResourceKindRegistry(
        parse_resource_kinds(
            settings.resource_kinds_json,
            default_mandatory=settings.default_mandatory_conditions,
        )
    )
