import logging

import pytest

from state_engine.constraints import (
    Constraint,
    ConstraintConflictError,
    apply_constraints,
    check_fixed_point,
    sort_constraints,
)
from state_engine.expressions import UnsafeExpressionError


def test_unsafe_when_is_rejected_at_declaration() -> None:
    with pytest.raises(UnsafeExpressionError):
        Constraint(when="__import__('os')", apply={"x": 1}, reason="nope")


def test_predicate_forms() -> None:
    state = {"showBaseline": False}
    assert Constraint(when="showBaseline == False", apply={}, reason="expr").matches(state)
    assert Constraint(when={"field": "showBaseline", "is": False}, apply={}, reason="cond").matches(state)
    assert Constraint(when=lambda s: s["showBaseline"] is False, apply={}, reason="callable").matches(state)


def test_higher_priority_applies_first_and_ties_keep_order() -> None:
    low = Constraint(when="True", apply={"x": 1}, reason="low", priority=0)
    first = Constraint(when="True", apply={"x": 2}, reason="first", priority=2)
    second = Constraint(when="True", apply={"y": 3}, reason="second", priority=2)
    assert [c.reason for c in sort_constraints([low, first, second])] == ["first", "second", "low"]


def test_apply_records_changes_with_priority_label() -> None:
    constraint = Constraint(
        when="type == 'population'",
        apply={"showBaseline": False, "showPredictionInterval": False},
        reason="Population has no baseline",
        priority=2,
    )
    state = {"type": "population", "showBaseline": True, "showPredictionInterval": False}

    result, changes = apply_constraints(state, [constraint], frozenset(), key_for={"showBaseline": "sb"}.get)

    assert result["showBaseline"] is False
    assert state["showBaseline"] is True
    assert len(changes) == 1
    assert changes[0].field == "showBaseline"
    assert changes[0].key == "sb"
    assert changes[0].old_value is True
    assert changes[0].priority == "constraint (p2)"


def test_cascade_within_one_pass() -> None:
    constraints = [
        Constraint(when="showBaseline == False", apply={"showPredictionInterval": False}, reason="pi", priority=1),
        Constraint(when="type == 'population'", apply={"showBaseline": False}, reason="pop", priority=2),
    ]
    result, changes = apply_constraints(
        {"type": "population", "showBaseline": True, "showPredictionInterval": True},
        constraints,
        frozenset(),
    )
    assert result["showPredictionInterval"] is False
    assert [change.reason for change in changes] == ["pop", "pi"]


def test_hard_constraint_beats_user_override() -> None:
    hard = Constraint(when="True", apply={"showBaseline": True}, reason="required", priority=2)
    result, _ = apply_constraints({"showBaseline": False}, [hard], frozenset({"showBaseline"}))
    assert result["showBaseline"] is True


def test_soft_constraint_yields_to_user_override() -> None:
    soft = Constraint(
        when="showBaseline == True",
        apply={"showPredictionInterval": True},
        reason="restore",
        allow_user_override=True,
        priority=0,
    )
    state = {"showBaseline": True, "showPredictionInterval": False}

    kept, changes = apply_constraints(state, [soft], frozenset({"showPredictionInterval"}))
    assert kept["showPredictionInterval"] is False
    assert changes == []

    restored, _ = apply_constraints(state, [soft], frozenset())
    assert restored["showPredictionInterval"] is True


def test_equal_values_record_nothing() -> None:
    constraint = Constraint(when="True", apply={"ageGroups": ["all"]}, reason="all")
    result, changes = apply_constraints({"ageGroups": ["all"]}, [constraint], frozenset())
    assert changes == []
    assert result == {"ageGroups": ["all"]}


def test_predicate_errors_propagate() -> None:
    broken = Constraint(when="missingField == 1", apply={"x": 1}, reason="broken")
    with pytest.raises(NameError):
        apply_constraints({}, [broken], frozenset())


def test_fixed_point_check_detects_conflicts(caplog: pytest.LogCaptureFixture) -> None:
    constraints = [
        Constraint(when="x == 1", apply={"x": 2}, reason="one to two", priority=2),
        Constraint(when="x == 2", apply={"x": 1}, reason="two to one", priority=1),
    ]
    settled, _ = apply_constraints({"x": 1}, constraints, frozenset())

    with caplog.at_level(logging.WARNING, logger="state_engine.constraints"):
        with pytest.raises(ConstraintConflictError, match="conflicting fields: x"):
            check_fixed_point(settled, constraints, frozenset())
    assert any(record.getMessage() == "constraint_conflict" for record in caplog.records)


def test_fixed_point_check_passes_for_stable_rules() -> None:
    constraints = [Constraint(when="type == 'population'", apply={"showBaseline": False}, reason="pop")]
    settled, _ = apply_constraints({"type": "population", "showBaseline": True}, constraints, frozenset())
    check_fixed_point(settled, constraints, frozenset())
