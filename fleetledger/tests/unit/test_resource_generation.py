from __future__ import annotations

import pytest

from fleetledger.domain.models import Resource
from fleetledger.persistence.repos.resources import next_generation


def _resource(spec: dict | None) -> Resource:
    return Resource(kind="Cluster", name="c-1", spec=spec, generation=3)


def test_changed_spec_bumps_generation() -> None:
    assert next_generation(_resource({"region": "us-east-1"}), {"region": "eu-west-1"}) == 4


@pytest.mark.parametrize(
    ("stored", "incoming"),
    [
        ({"region": "us-east-1"}, None),
        ({"region": "us-east-1"}, {"region": "us-east-1"}),
        (None, {}),
    ],
)
def test_unchanged_spec_keeps_generation(stored: dict | None, incoming: dict | None) -> None:
    assert next_generation(_resource(stored), incoming) == 3
