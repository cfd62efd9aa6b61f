from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from .resolver import TRIGGER_INITIAL, ResolvedState

logger = logging.getLogger(__name__)


def _render(value: Any) -> str:
    return json.dumps(value, default=str)


def _title(resolved: ResolvedState, view_field: str) -> str:
    trigger = resolved.log.trigger
    if trigger == TRIGGER_INITIAL or isinstance(trigger, str):
        return "Initial state resolution"
    if trigger.field == view_field:
        return f"View change: {_render(trigger.value)}"
    return f"State resolution: {trigger.field} = {_render(trigger.value)}"


def _format_state(state: Mapping[str, Any]) -> str:
    return ", ".join(f"{name}={_render(value)}" for name, value in sorted(state.items()))


def format_resolution(
    resolved: ResolvedState,
    query: str | None = None,
    view_field: str = "view",
) -> str:
    """Human-readable audit trail of one resolution."""
    log = resolved.log
    lines = [_title(resolved, view_field)]
    if log.trigger != TRIGGER_INITIAL:
        lines.append(f"  before: {_format_state(log.before)}")
    lines.append(f"  after: {_format_state(log.after)}")

    if log.changes:
        lines.append("  changes:")
        for change in log.changes:
            lines.append(
                f"    {change.field} ({change.key}): {_render(change.old_value)} -> {_render(change.new_value)}"
                f" [{change.priority}] {change.reason}"
            )
    else:
        lines.append("  changes: none")

    for warning in log.warnings:
        lines.append(f"  warning: {warning}")

    lines.append(f"  user overrides: {', '.join(sorted(resolved.user_overrides)) or '-'}")
    if query is not None:
        lines.append(f"  query: {query or '-'}")

    hidden = sorted(element for element, ui in resolved.ui.items() if not ui.visible)
    disabled = sorted(element for element, ui in resolved.ui.items() if ui.visible and ui.disabled)
    lines.append(f"  ui hidden: {', '.join(hidden) or '-'}")
    lines.append(f"  ui locked: {', '.join(disabled) or '-'}")
    return "\n".join(lines)


def log_resolution(resolved: ResolvedState, query: str | None = None, view_field: str = "view") -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug("resolution_audit\n%s", format_resolution(resolved, query=query, view_field=view_field))
