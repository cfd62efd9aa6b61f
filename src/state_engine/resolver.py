from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from .constraints import ChangeRecord, Constraint, apply_constraints, check_fixed_point, with_field
from .fields import FieldRegistry, RawInput, copy_value, decode_fields, values_equal
from .ui_state import UIElementState, compute_ui_state
from .views import View, ViewRegistry

PRIORITY_DEFAULT = "default"
PRIORITY_USER = "user"
PRIORITY_VIEW_DEFAULT = "view-default"
PRIORITY_CONSTRAINT = "constraint"
TRIGGER_INITIAL = "initial"

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Schema:
    """Everything that distinguishes one feature's state from another's."""

    name: str
    fields: FieldRegistry
    views: ViewRegistry
    constraints: tuple[Constraint, ...] = ()

    def constraints_for(self, view: View) -> list[Constraint]:
        return [*view.constraints, *self.constraints]


@dataclass(slots=True, frozen=True)
class StateChange:
    field: str
    value: Any
    source: str = "user"


@dataclass(slots=True, frozen=True)
class FieldMetadata:
    value: Any
    priority: str
    reason: str
    changed: bool
    key: str


@dataclass(slots=True)
class ResolutionLog:
    timestamp: str
    trigger: StateChange | str
    before: dict[str, Any]
    after: dict[str, Any] = field(default_factory=dict)
    changes: list[ChangeRecord] = field(default_factory=list)
    user_overrides_from_input: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "trigger": self.trigger if isinstance(self.trigger, str) else asdict(self.trigger),
            "before": self.before,
            "after": self.after,
            "changes": [asdict(change) for change in self.changes],
            "user_overrides_from_input": list(self.user_overrides_from_input),
            "warnings": list(self.warnings),
        }


@dataclass(slots=True, frozen=True)
class ResolvedState:
    state: dict[str, Any]
    view: str
    ui: dict[str, UIElementState]
    metadata: dict[str, FieldMetadata]
    changed_fields: tuple[str, ...]
    user_overrides: frozenset[str]
    log: ResolutionLog

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "view": self.view,
            "ui": {element: asdict(value) for element, value in self.ui.items()},
            "metadata": {name: asdict(value) for name, value in self.metadata.items()},
            "changed_fields": list(self.changed_fields),
            "user_overrides": sorted(self.user_overrides),
            "log": self.log.to_dict(),
        }


def _snapshot(state: Mapping[str, Any]) -> dict[str, Any]:
    return {name: copy_value(value) for name, value in state.items()}


def _fixed_point_enabled() -> bool:
    return os.environ.get("STATE_ENGINE_CHECK_FIXED_POINT", "0").strip().lower() in {"1", "true", "yes"}


class StateResolver:
    """Deterministic resolution of raw input and change events into one state.

    Every entry point returns a fresh ResolvedState and leaves its arguments
    untouched, so one resolver can serve concurrent requests.
    """

    def __init__(
        self,
        schema: Schema,
        check_fixed_point: bool | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.schema = schema
        self.check_fixed_point = _fixed_point_enabled() if check_fixed_point is None else check_fixed_point
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def fields(self) -> FieldRegistry:
        return self.schema.fields

    @property
    def views(self) -> ViewRegistry:
        return self.schema.views

    def key_for(self, name: str) -> str:
        if name == self.views.view_field:
            return self.views.view_field
        return self.fields.key_for(name)

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def resolve_initial(self, raw_input: RawInput) -> ResolvedState:
        log = ResolutionLog(timestamp=self._timestamp(), trigger=TRIGGER_INITIAL, before={})
        view_field = self.views.view_field
        base = self.views.base

        requested = self.views.detect(raw_input)
        decoded, warnings = decode_fields(raw_input, self.fields)
        log.warnings.extend(warnings)

        view = self.views.get(requested)
        fallback_reason: str | None = None
        conflicts = view.incompatibilities({**self.views.defaults_for(requested), **decoded})
        if conflicts:
            name, value = conflicts[0]
            fallback_reason = f"{view.label} is not compatible with {name}={value!r}"
            logger.warning(
                "view_fallback",
                extra={"schema": self.schema.name, "requested": requested, "field": name, "value": value},
            )
            view = self.views.base_view

        defaults = self.views.defaults_for(view.id)
        state = dict(defaults)
        overrides: set[str] = set()
        notes: dict[str, tuple[str, str]] = {}

        if requested != base:
            overrides.add(view_field)
            log.user_overrides_from_input.append(view_field)
            log.changes.append(
                ChangeRecord(
                    field=view_field,
                    key=self._flag_key(requested),
                    old_value=base,
                    new_value=requested,
                    priority=PRIORITY_USER,
                    reason="Selected in input",
                )
            )

        for name, value in decoded.items():
            default = defaults.get(name)
            if values_equal(value, default):
                notes[name] = (PRIORITY_DEFAULT, "Input matches default")
            else:
                overrides.add(name)
                log.user_overrides_from_input.append(name)
                log.changes.append(
                    ChangeRecord(
                        field=name,
                        key=self.key_for(name),
                        old_value=copy_value(default),
                        new_value=copy_value(value),
                        priority=PRIORITY_USER,
                        reason="Set in input",
                    )
                )
            state = with_field(state, name, value)

        if fallback_reason is not None:
            overrides.discard(view_field)
            log.changes.append(
                ChangeRecord(
                    field=view_field,
                    key=self._flag_key(requested),
                    old_value=requested,
                    new_value=view.id,
                    priority=PRIORITY_CONSTRAINT,
                    reason=fallback_reason,
                )
            )

        return self._finish(state, view, overrides, log, base_reason=f"{view.label} default", notes=notes)

    def resolve_change(
        self,
        change: StateChange,
        current_state: Mapping[str, Any],
        current_overrides: Iterable[str] = (),
    ) -> ResolvedState:
        view_field = self.views.view_field
        if change.field == view_field:
            return self.resolve_view_change(str(change.value), current_state, current_overrides)

        log = ResolutionLog(timestamp=self._timestamp(), trigger=change, before=_snapshot(current_state))
        overrides = set(current_overrides)

        state = with_field(current_state, change.field, change.value)
        from_user = change.source == PRIORITY_USER
        if from_user:
            overrides.add(change.field)
            log.user_overrides_from_input.append(change.field)
        log.changes.append(
            ChangeRecord(
                field=change.field,
                key=self.key_for(change.field),
                old_value=copy_value(current_state.get(change.field)),
                new_value=copy_value(change.value),
                priority=PRIORITY_USER if from_user else PRIORITY_DEFAULT,
                reason="User action" if from_user else f"Set by {change.source}",
            )
        )

        view = self.views.active(state)
        conflicts = view.incompatibilities(state)
        if conflicts and view.id != self.views.base:
            name, value = conflicts[0]
            logger.warning(
                "view_fallback",
                extra={"schema": self.schema.name, "requested": view.id, "field": name, "value": value},
            )
            view = self.views.base_view
            state = self._switch_view(
                state,
                overrides,
                view,
                log,
                priority=PRIORITY_CONSTRAINT,
                reason=f"{self.views.get(str(state.get(view_field))).label} is not compatible with {name}={value!r}",
            )
            overrides.discard(view_field)

        return self._finish(state, view, overrides, log, base_reason="Unchanged")

    def resolve_view_change(
        self,
        view_id: str,
        current_state: Mapping[str, Any],
        current_overrides: Iterable[str] = (),
    ) -> ResolvedState:
        view_field = self.views.view_field
        target = self.views.get(view_id)
        log = ResolutionLog(
            timestamp=self._timestamp(),
            trigger=StateChange(field=view_field, value=view_id, source=PRIORITY_USER),
            before=_snapshot(current_state),
        )
        overrides = set(current_overrides)

        target_defaults = self.views.defaults_for(target.id)
        candidate = {
            **current_state,
            **{name: target_defaults.get(name) for name in target.owned_fields},
            view_field: target.id,
        }
        conflicts = target.incompatibilities(candidate)
        if conflicts:
            name, value = conflicts[0]
            logger.warning(
                "view_fallback",
                extra={"schema": self.schema.name, "requested": target.id, "field": name, "value": value},
            )
            view = self.views.base_view
            priority = PRIORITY_CONSTRAINT
            reason = f"{target.label} is not compatible with {name}={value!r}, using {view.label}"
        else:
            view = target
            priority = PRIORITY_USER
            reason = "User changed view"

        state = self._switch_view(current_state, overrides, view, log, priority=priority, reason=reason)
        if view.id != self.views.base:
            overrides.add(view_field)
            log.user_overrides_from_input.append(view_field)
        else:
            overrides.discard(view_field)

        return self._finish(state, view, overrides, log, base_reason="Unchanged")

    def serialize(self, state: Mapping[str, Any]) -> dict[str, str]:
        from .serializer import serialize

        return serialize(self.schema, state)

    def _flag_key(self, view_id: str) -> str:
        flag = self.views.flag_for(view_id)
        return flag.key if flag is not None else self.views.view_field

    def _switch_view(
        self,
        state: Mapping[str, Any],
        overrides: set[str],
        view: View,
        log: ResolutionLog,
        priority: str,
        reason: str,
    ) -> dict[str, Any]:
        """Set the view and its defaults; user overrides survive except owned fields.

        `overrides` is the resolver's private working copy and is updated in place.
        """
        view_field = self.views.view_field
        current = dict(state)
        old_view = current.get(view_field)
        if old_view != view.id:
            log.changes.append(
                ChangeRecord(
                    field=view_field,
                    key=self._flag_key(view.id),
                    old_value=old_view,
                    new_value=view.id,
                    priority=priority,
                    reason=reason,
                )
            )
        current = with_field(current, view_field, view.id)

        for name, value in self.views.defaults_for(view.id).items():
            if name == view_field:
                continue
            owned = name in view.owned_fields
            if name in overrides and not owned:
                continue
            old_value = current.get(name)
            if not values_equal(old_value, value):
                current = with_field(current, name, value)
                log.changes.append(
                    ChangeRecord(
                        field=name,
                        key=self.key_for(name),
                        old_value=copy_value(old_value),
                        new_value=copy_value(value),
                        priority=PRIORITY_VIEW_DEFAULT,
                        reason=f"{view.label} view default",
                    )
                )
            if owned:
                overrides.discard(name)
        return current

    def _finish(
        self,
        state: Mapping[str, Any],
        view: View,
        overrides: set[str],
        log: ResolutionLog,
        base_reason: str,
        notes: Mapping[str, tuple[str, str]] | None = None,
    ) -> ResolvedState:
        constraints = self.schema.constraints_for(view)
        frozen_overrides = frozenset(overrides)
        constrained, changes = apply_constraints(state, constraints, frozen_overrides, self.key_for)
        log.changes.extend(changes)
        if self.check_fixed_point:
            check_fixed_point(constrained, constraints, frozen_overrides)

        log.after = _snapshot(constrained)
        ui = compute_ui_state(view, constrained)
        metadata = self._metadata(constrained, log.changes, base_reason, notes or {})
        changed_fields = tuple(dict.fromkeys(change.field for change in log.changes))

        logger.debug(
            "state_resolved",
            extra={
                "schema": self.schema.name,
                "trigger": log.trigger if isinstance(log.trigger, str) else log.trigger.field,
                "view": view.id,
                "change_count": len(log.changes),
                "user_overrides": sorted(frozen_overrides),
            },
        )

        return ResolvedState(
            state=constrained,
            view=view.id,
            ui=ui,
            metadata=metadata,
            changed_fields=changed_fields,
            user_overrides=frozen_overrides,
            log=log,
        )

    def _metadata(
        self,
        state: Mapping[str, Any],
        changes: list[ChangeRecord],
        base_reason: str,
        notes: Mapping[str, tuple[str, str]],
    ) -> dict[str, FieldMetadata]:
        latest = {change.field: change for change in changes}
        metadata: dict[str, FieldMetadata] = {}
        for name, value in state.items():
            record = latest.get(name)
            if record is not None:
                priority, reason, changed = record.priority, record.reason, True
            elif name in notes:
                (priority, reason), changed = notes[name], False
            else:
                priority, reason, changed = PRIORITY_DEFAULT, base_reason, False
            metadata[name] = FieldMetadata(
                value=copy_value(value),
                priority=priority,
                reason=reason,
                changed=changed,
                key=self.key_for(name),
            )
        return metadata
