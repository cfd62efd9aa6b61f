from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .conditions import evaluate_condition
from .views import CONDITIONAL, HIDDEN, VISIBLE, View, VisibilityRule


@dataclass(slots=True, frozen=True)
class UIElementState:
    visible: bool
    disabled: bool


def element_state(rule: VisibilityRule, state: Mapping[str, Any]) -> UIElementState:
    if rule.kind == HIDDEN:
        return UIElementState(visible=False, disabled=True)
    if rule.kind == VISIBLE:
        return UIElementState(visible=True, disabled=not rule.toggleable)
    if rule.kind == CONDITIONAL:
        shown = evaluate_condition(rule.when, state)
        return UIElementState(visible=shown, disabled=not shown)
    return UIElementState(visible=False, disabled=True)


def compute_ui_state(view: View, state: Mapping[str, Any]) -> dict[str, UIElementState]:
    return {element: element_state(rule, state) for element, rule in view.ui.items()}
