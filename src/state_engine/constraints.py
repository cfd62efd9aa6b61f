from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from .conditions import evaluate_condition
from .expressions import ExpressionProgram, compile_expression, evaluate_program
from .fields import copy_value, values_equal

DEFAULT_PRIORITY = 1

logger = logging.getLogger(__name__)

Predicate = Callable[[Mapping[str, Any]], bool]


class ConstraintConflictError(ValueError):
    """Raised when a second constraint pass still changes the state."""


@dataclass(slots=True, frozen=True)
class ChangeRecord:
    field: str
    key: str
    old_value: Any
    new_value: Any
    priority: str
    reason: str


@dataclass(slots=True, frozen=True)
class Constraint:
    """A business rule forcing field values while its predicate holds.

    `when` is a safe expression string, a condition mapping or a callable.
    Hard constraints (`allow_user_override=False`) win over user overrides;
    soft ones leave overridden fields untouched.
    """

    when: str | Mapping[str, Any] | Predicate
    apply: Mapping[str, Any]
    reason: str
    allow_user_override: bool = False
    priority: int = DEFAULT_PRIORITY
    _program: ExpressionProgram | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.when, str):
            object.__setattr__(self, "_program", compile_expression(self.when))

    @property
    def label(self) -> str:
        return f"constraint (p{self.priority})"

    def matches(self, state: Mapping[str, Any]) -> bool:
        if self._program is not None:
            return bool(evaluate_program(self._program, state))
        if isinstance(self.when, Mapping):
            return evaluate_condition(self.when, state)
        return bool(self.when(state))


def sort_constraints(constraints: Iterable[Constraint]) -> list[Constraint]:
    # sorted() is stable, so equal priorities keep declaration order
    return sorted(constraints, key=lambda constraint: -constraint.priority)


def with_field(state: Mapping[str, Any], name: str, value: Any) -> dict[str, Any]:
    return {**state, name: copy_value(value)}


def apply_constraints(
    state: Mapping[str, Any],
    constraints: Iterable[Constraint],
    user_overrides: frozenset[str] | set[str],
    key_for: Callable[[str], str] = str,
) -> tuple[dict[str, Any], list[ChangeRecord]]:
    """Single pass over `constraints` in descending priority.

    Each matching constraint forces its values unless the field is a user
    override and the constraint allows that override. Returns a new state and
    the ordered change records; the input state is never mutated.
    """
    current: dict[str, Any] = dict(state)
    changes: list[ChangeRecord] = []

    for constraint in sort_constraints(constraints):
        if not constraint.matches(current):
            continue
        for name, forced in constraint.apply.items():
            if name in user_overrides and constraint.allow_user_override:
                continue
            old_value = current.get(name)
            if values_equal(old_value, forced):
                continue
            current = with_field(current, name, forced)
            changes.append(
                ChangeRecord(
                    field=name,
                    key=key_for(name),
                    old_value=copy_value(old_value),
                    new_value=copy_value(forced),
                    priority=constraint.label,
                    reason=constraint.reason,
                )
            )

    return current, changes


def check_fixed_point(
    state: Mapping[str, Any],
    constraints: Iterable[Constraint],
    user_overrides: frozenset[str] | set[str],
) -> None:
    """Raise when a second pass over an already constrained state changes anything."""
    constraints = list(constraints)
    _, changes = apply_constraints(state, constraints, user_overrides)
    if not changes:
        return
    fields = sorted({change.field for change in changes})
    logger.warning(
        "constraint_conflict",
        extra={"fields": fields, "reasons": [change.reason for change in changes]},
    )
    raise ConstraintConflictError(
        f"constraints are not stable after one pass; conflicting fields: {', '.join(fields)}"
    )
