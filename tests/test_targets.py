from __future__ import annotations

import pytest

from app.extractor import db
from app.extractor.adapter import Target
from app.extractor.errors import ResolutionError
from app.extractor.targets import TargetResolver
from tests.fake_source import FakeAdapter


def _adapter(**kwargs) -> FakeAdapter:
    params = dict(
        cities={"10": "Pune City", "20": "Nagpur City"},
        stations={"10": [("101", "Shivajinagar"), ("102", "Kothrud")]},
    )
    params.update(kwargs)
    return FakeAdapter(**params)


def test_cached_cities_do_not_open_a_session() -> None:
    db.replace_cities([{"value": "10", "text": "Pune City"}])

    def _factory():
        raise AssertionError("live lookup should not run")

    resolver = TargetResolver(adapter_factory=_factory)

    assert resolver.list_top_level_targets() == [Target("10", "Pune City")]


def test_empty_cache_falls_back_to_live_source() -> None:
    adapter = _adapter()
    resolver = TargetResolver(adapter_factory=lambda: adapter)

    cities = resolver.list_top_level_targets()

    assert [c.id for c in cities] == ["10", "20"]
    assert adapter.opened and adapter.closed
    # Live results are not written back.
    assert db.list_cities() == []


def test_live_children_select_parent_first() -> None:
    adapter = _adapter()
    resolver = TargetResolver(adapter=adapter)

    stations = resolver.list_child_targets("10")

    assert [s.name for s in stations] == ["Shivajinagar", "Kothrud"]
    assert adapter.calls[0] == ("select", "target", "10")


def test_cached_children_are_scoped_to_parent() -> None:
    db.replace_stations("10", [{"value": "101", "text": "Shivajinagar"}])
    db.replace_stations("20", [{"value": "201", "text": "Sitabuldi"}])

    resolver = TargetResolver()

    assert resolver.list_child_targets("20") == [Target("201", "Sitabuldi")]


def test_live_failure_raises_resolution_error() -> None:
    adapter = _adapter(stations={})
    resolver = TargetResolver(adapter_factory=lambda: adapter)

    with pytest.raises(ResolutionError):
        resolver.list_child_targets("20")


def test_no_cache_and_no_session_raises() -> None:
    with pytest.raises(ResolutionError):
        TargetResolver().list_top_level_targets()
