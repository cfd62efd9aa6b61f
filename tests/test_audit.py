import logging

import pytest

from state_engine.audit import format_resolution, log_resolution
from state_engine.explorer import EXPLORER_SCHEMA
from state_engine.resolver import StateChange, StateResolver


def test_initial_resolution_summary() -> None:
    resolved = StateResolver(EXPLORER_SCHEMA).resolve_initial({"e": "1", "sb": "0"})
    text = format_resolution(resolved, query="e=1")

    assert text.splitlines()[0] == "Initial state resolution"
    assert "before:" not in text
    assert "showBaseline (sb): false -> true [constraint (p2)] Excess mortality requires baseline" in text
    assert "user overrides: showBaseline, view" in text
    assert "query: e=1" in text
    assert "ui hidden: logarithmic" in text


def test_change_summary() -> None:
    resolver = StateResolver(EXPLORER_SCHEMA)
    initial = resolver.resolve_initial({})
    resolved = resolver.resolve_change(StateChange("type", "population"), initial.state, initial.user_overrides)

    text = format_resolution(resolved)
    assert text.splitlines()[0] == 'State resolution: type = "population"'
    assert "  before: " in text


def test_view_change_summary() -> None:
    resolver = StateResolver(EXPLORER_SCHEMA)
    initial = resolver.resolve_initial({})
    resolved = resolver.resolve_view_change("zscore", initial.state, initial.user_overrides)
    assert format_resolution(resolved).startswith('View change: "zscore"')


def test_log_resolution_only_at_debug(caplog: pytest.LogCaptureFixture) -> None:
    resolved = StateResolver(EXPLORER_SCHEMA).resolve_initial({})

    with caplog.at_level(logging.INFO, logger="state_engine.audit"):
        log_resolution(resolved)
    assert not caplog.records

    with caplog.at_level(logging.DEBUG, logger="state_engine.audit"):
        log_resolution(resolved)
    assert "Initial state resolution" in caplog.text
