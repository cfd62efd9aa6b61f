from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .resolver import ResolvedState, StateResolver

PERIODS_BY_CHART_TYPE = {
    "weekly": 520,
    "monthly": 120,
    "quarterly": 40,
}
DEFAULT_PERIODS = 10


@dataclass(slots=True, frozen=True)
class DateRange:
    date_from: str
    date_to: str


@dataclass(slots=True, frozen=True)
class RenderState:
    """Resolved state plus the concrete ranges a server-side renderer needs."""

    resolved: ResolvedState
    visible_labels: tuple[str, ...]
    dates: DateRange
    baseline: DateRange

    def to_dict(self) -> dict[str, Any]:
        payload = self.resolved.to_dict()
        payload["effective"] = {
            "dateFrom": self.dates.date_from,
            "dateTo": self.dates.date_to,
            "baselineDateFrom": self.baseline.date_from,
            "baselineDateTo": self.baseline.date_to,
        }
        return payload


def default_periods(chart_type: str) -> int:
    # roughly ten years of data at every periodicity
    if chart_type.startswith("weekly"):
        return PERIODS_BY_CHART_TYPE["weekly"]
    return PERIODS_BY_CHART_TYPE.get(chart_type, DEFAULT_PERIODS)


def visible_labels(labels: Sequence[str], slider_start: str | None) -> list[str]:
    if not labels:
        return []
    if not slider_start:
        return list(labels)
    start = next((index for index, label in enumerate(labels) if label >= slider_start), None)
    if start is None:
        return list(labels)
    return list(labels[start:])


def effective_date_range(
    labels: Sequence[str],
    chart_type: str,
    slider_start: str | None,
    date_from: str | None,
    date_to: str | None,
) -> tuple[list[str], DateRange]:
    visible = visible_labels(labels, slider_start)
    if not visible:
        return visible, DateRange(date_from="", date_to="")
    if date_from and date_to:
        return visible, DateRange(date_from=date_from, date_to=date_to)
    start = max(0, len(visible) - default_periods(chart_type))
    return visible, DateRange(date_from=date_from or visible[start], date_to=date_to or visible[-1])


def effective_baseline_range(dates: DateRange, baseline_from: str | None, baseline_to: str | None) -> DateRange:
    return DateRange(date_from=baseline_from or dates.date_from, date_to=baseline_to or dates.date_to)


def resolve_for_rendering(
    resolver: StateResolver,
    raw_input: dict[str, Any],
    labels: Sequence[str],
    chart_type_field: str = "chartType",
) -> RenderState:
    resolved = resolver.resolve_initial(raw_input)
    state = resolved.state
    visible, dates = effective_date_range(
        labels,
        str(state.get(chart_type_field) or ""),
        state.get("sliderStart"),
        state.get("dateFrom"),
        state.get("dateTo"),
    )
    baseline = effective_baseline_range(dates, state.get("baselineDateFrom"), state.get("baselineDateTo"))
    return RenderState(resolved=resolved, visible_labels=tuple(visible), dates=dates, baseline=baseline)
