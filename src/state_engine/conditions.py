"""Boolean predicates over a state snapshot.

A condition is plain data so that view declarations stay serializable:

    {"field": "chartStyle", "is": "bar"}
    {"field": "chartStyle", "is_not": "matrix"}
    {"and": [condition, ...]}
    {"or": [condition, ...]}

Anything else is malformed and evaluates to False.
"""

from __future__ import annotations

from typing import Any, Mapping

from .fields import values_equal

Condition = Mapping[str, Any]


def field_is(name: str, value: Any) -> dict[str, Any]:
    return {"field": name, "is": value}


def field_is_not(name: str, value: Any) -> dict[str, Any]:
    return {"field": name, "is_not": value}


def all_of(*conditions: Condition) -> dict[str, Any]:
    return {"and": list(conditions)}


def any_of(*conditions: Condition) -> dict[str, Any]:
    return {"or": list(conditions)}


def evaluate_condition(condition: Any, state: Mapping[str, Any]) -> bool:
    if not isinstance(condition, Mapping):
        return False

    if "and" in condition:
        children = condition["and"]
        if not isinstance(children, (list, tuple)):
            return False
        return all(evaluate_condition(child, state) for child in children)

    if "or" in condition:
        children = condition["or"]
        if not isinstance(children, (list, tuple)):
            return False
        return any(evaluate_condition(child, state) for child in children)

    name = condition.get("field")
    if not isinstance(name, str) or not name:
        return False
    value = state.get(name)
    if "is" in condition:
        return values_equal(value, condition["is"])
    if "is_not" in condition:
        return not values_equal(value, condition["is_not"])
    return False


def condition_fields(condition: Any) -> set[str]:
    """Field names a condition reads; empty for malformed input."""
    if not isinstance(condition, Mapping):
        return set()
    for combinator in ("and", "or"):
        if combinator in condition and isinstance(condition[combinator], (list, tuple)):
            names: set[str] = set()
            for child in condition[combinator]:
                names |= condition_fields(child)
            return names
    name = condition.get("field")
    return {name} if isinstance(name, str) and name else set()
