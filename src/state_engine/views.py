from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from .conditions import Condition, condition_fields
from .fields import RawInput, SchemaError, copy_value, values_equal

if TYPE_CHECKING:
    from .constraints import Constraint

HIDDEN = "hidden"
VISIBLE = "visible"
CONDITIONAL = "conditional"
GENERIC_VIEW_KEY = "view"


class UnknownViewError(ValueError):
    """Raised when a view id is not declared by the schema."""


@dataclass(slots=True, frozen=True)
class VisibilityRule:
    kind: str
    toggleable: bool = True
    value: Any = None
    when: Condition | None = None

    def describe(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.kind}
        if self.kind == VISIBLE:
            payload["toggleable"] = self.toggleable
            if not self.toggleable:
                payload["value"] = self.value
        if self.kind == CONDITIONAL:
            payload["when"] = self.when
            payload["depends_on"] = sorted(condition_fields(self.when))
        return payload


def hidden() -> VisibilityRule:
    return VisibilityRule(kind=HIDDEN, toggleable=False)


def toggleable() -> VisibilityRule:
    return VisibilityRule(kind=VISIBLE, toggleable=True)


def required(value: Any) -> VisibilityRule:
    return VisibilityRule(kind=VISIBLE, toggleable=False, value=value)


def conditional(when: Condition) -> VisibilityRule:
    return VisibilityRule(kind=CONDITIONAL, toggleable=True, when=when)


@dataclass(slots=True, frozen=True)
class DetectionFlag:
    """A raw input key/value pair that selects a view."""

    key: str
    value: str
    view: str

    def matches(self, raw_input: RawInput) -> bool:
        raw = raw_input.get(self.key)
        if isinstance(raw, (list, tuple)):
            raw = raw[0] if raw else None
        return raw is not None and str(raw) == self.value


@dataclass(slots=True, frozen=True)
class View:
    id: str
    label: str
    defaults: Mapping[str, Any] = field(default_factory=dict)
    constraints: tuple[Constraint, ...] = ()
    ui: Mapping[str, VisibilityRule] = field(default_factory=dict)
    compatibility: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)
    owned_fields: tuple[str, ...] = ()

    def incompatibilities(self, state: Mapping[str, Any]) -> list[tuple[str, Any]]:
        conflicts: list[tuple[str, Any]] = []
        for name, allowed in self.compatibility.items():
            value = state.get(name)
            if not any(values_equal(value, candidate) for candidate in allowed):
                conflicts.append((name, value))
        return conflicts

    def is_compatible(self, state: Mapping[str, Any]) -> bool:
        return not self.incompatibilities(state)


@dataclass(slots=True)
class ViewRegistry:
    """The closed set of mutually exclusive views of one feature.

    `flags` are evaluated in order and the first match wins; a generic
    `view=<id>` input is the lowest-priority fallback before the base view.
    """

    views: tuple[View, ...]
    base: str
    flags: tuple[DetectionFlag, ...] = ()
    view_field: str = "view"
    _by_id: dict[str, View] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {}
        for view in self.views:
            if view.id in self._by_id:
                raise SchemaError(f"duplicate view: {view.id}")
            self._by_id[view.id] = view
        if self.base not in self._by_id:
            raise SchemaError(f"base view '{self.base}' is not declared")
        for flag in self.flags:
            if flag.view not in self._by_id:
                raise SchemaError(f"detection flag {flag.key}={flag.value} selects unknown view '{flag.view}'")

    def __iter__(self) -> Iterator[View]:
        return iter(self.views)

    def __contains__(self, view_id: object) -> bool:
        return view_id in self._by_id

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(view.id for view in self.views)

    @property
    def base_view(self) -> View:
        return self._by_id[self.base]

    def get(self, view_id: str) -> View:
        view = self._by_id.get(view_id)
        if view is None:
            raise UnknownViewError(f"unknown view '{view_id}' (expected one of {', '.join(self.ids)})")
        return view

    def active(self, state: Mapping[str, Any]) -> View:
        view_id = state.get(self.view_field)
        if isinstance(view_id, str) and view_id in self._by_id:
            return self._by_id[view_id]
        return self.base_view

    def detect(self, raw_input: RawInput) -> str:
        for flag in self.flags:
            if flag.matches(raw_input):
                return flag.view
        generic = raw_input.get(GENERIC_VIEW_KEY)
        if isinstance(generic, (list, tuple)):
            generic = generic[0] if generic else None
        if isinstance(generic, str) and generic in self._by_id:
            return generic
        return self.base

    def flag_for(self, view_id: str) -> DetectionFlag | None:
        if view_id == self.base:
            return None
        return next((flag for flag in self.flags if flag.view == view_id), None)

    def defaults_for(self, view_id: str) -> dict[str, Any]:
        """Base defaults, overlaid with the view's own defaults and its identity."""
        view = self.get(view_id)
        merged = {**self.base_view.defaults, **view.defaults, self.view_field: view.id}
        return {name: copy_value(value) for name, value in merged.items()}
