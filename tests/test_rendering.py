from state_engine.explorer import EXPLORER_SCHEMA
from state_engine.rendering import (
    DateRange,
    default_periods,
    effective_baseline_range,
    effective_date_range,
    resolve_for_rendering,
    visible_labels,
)
from state_engine.resolver import StateResolver

YEARS = [str(year) for year in range(2000, 2024)]


def test_default_periods_by_chart_type() -> None:
    assert default_periods("weekly") == 520
    assert default_periods("weekly_104w_sma") == 520
    assert default_periods("monthly") == 120
    assert default_periods("quarterly") == 40
    assert default_periods("fluseason") == 10


def test_slider_start_trims_labels() -> None:
    assert visible_labels(YEARS, "2010")[0] == "2010"
    assert visible_labels(YEARS, None) == YEARS
    assert visible_labels(YEARS, "2099") == YEARS
    assert visible_labels([], "2010") == []


def test_effective_range_defaults_to_recent_periods() -> None:
    _, dates = effective_date_range(YEARS, "yearly", None, None, None)
    assert dates == DateRange(date_from="2014", date_to="2023")

    _, dates = effective_date_range(YEARS, "yearly", None, "2005", None)
    assert dates == DateRange(date_from="2005", date_to="2023")

    _, dates = effective_date_range([], "yearly", None, None, None)
    assert dates == DateRange(date_from="", date_to="")


def test_baseline_range_falls_back_to_date_range() -> None:
    dates = DateRange(date_from="2014", date_to="2023")
    assert effective_baseline_range(dates, None, None) == dates
    assert effective_baseline_range(dates, "2015", "2019") == DateRange(date_from="2015", date_to="2019")


def test_resolve_for_rendering() -> None:
    render = resolve_for_rendering(StateResolver(EXPLORER_SCHEMA), {"e": "1", "ct": "yearly"}, YEARS)

    assert render.resolved.view == "excess"
    assert render.visible_labels[0] == "2010"
    assert render.dates == DateRange(date_from="2014", date_to="2023")
    assert render.to_dict()["effective"]["baselineDateFrom"] == "2014"
