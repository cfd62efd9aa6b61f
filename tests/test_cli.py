import json
import sys

import pytest

from state_engine.__main__ import main


def test_resolve_prints_state(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(sys, "argv", ["state_engine", "resolve", "--query", "?e=1&sb=0&lg=1"])
    main()

    payload = json.loads(capsys.readouterr().out)
    assert payload["view"] == "excess"
    assert payload["state"]["showBaseline"] is True
    assert payload["query"] == "e=1"


def test_resolve_explain(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(sys, "argv", ["state_engine", "resolve", "--schema", "ranking", "--query", "a=0", "--explain"])
    main()

    out = capsys.readouterr().out
    assert out.startswith("Initial state resolution")
    assert 'metricType (m): "asmr" -> "cmr" [user] Set in input' in out
    assert "query: m=cmr" in out
