"""Mortality explorer: fields, views and business rules."""

from __future__ import annotations

from typing import Any, Mapping

from .conditions import all_of, field_is
from .constraints import Constraint
from .fields import Field, FieldRegistry
from .resolver import Schema
from .views import DetectionFlag, View, ViewRegistry, conditional, hidden, required, toggleable

DEFAULT_SLIDER_START = "2010"

UPDATE_DOWNLOAD = "download"
UPDATE_DATASET = "update"
UPDATE_FILTER = "filter"
UPDATE_NONE = "none"

EXPLORER_FIELDS = FieldRegistry(
    fields=(
        Field.array("countries", "c"),
        Field(name="type", key="t"),
        Field(name="chartType", key="ct"),
        Field(name="chartStyle", key="cs"),
        Field(name="dateFrom", key="df"),
        Field(name="dateTo", key="dt"),
        Field(name="sliderStart", key="ss"),
        Field(name="baselineDateFrom", key="bf"),
        Field(name="baselineDateTo", key="bt"),
        Field(name="standardPopulation", key="sp"),
        Field.array("ageGroups", "ag"),
        Field.boolean("showBaseline", "sb"),
        Field(name="baselineMethod", key="bm"),
        Field.boolean("cumulative", "ce"),
        Field.boolean("showTotal", "st"),
        Field.boolean("maximize", "m"),
        Field.boolean("showPredictionInterval", "pi"),
        Field.boolean("showLabels", "sl"),
        Field.boolean("showPercentage", "p"),
        Field.boolean("showLogarithmic", "lg", legacy_keys=("isLogarithmic",)),
        Field.array("userColors", "uc"),
        Field(name="decimals", key="dec"),
        Field.boolean("showLogo", "l"),
        Field.boolean("showQrCode", "qr"),
        Field.boolean("showCaption", "cap"),
        Field.boolean("showTitle", "ti"),
        Field.boolean("darkMode", "dm"),
    )
)

MORTALITY = View(
    id="mortality",
    label="Mortality Analysis",
    defaults={
        "countries": ["USA", "SWE"],
        "type": "asmr",
        "chartType": "fluseason",
        "chartStyle": "line",
        "ageGroups": ["all"],
        "standardPopulation": "who",
        "isExcess": False,
        "isZScore": False,
        "dateFrom": None,
        "dateTo": None,
        "sliderStart": DEFAULT_SLIDER_START,
        "baselineDateFrom": None,
        "baselineDateTo": None,
        "showBaseline": True,
        "baselineMethod": "mean",
        "showPredictionInterval": True,
        "cumulative": False,
        "showTotal": False,
        "showPercentage": False,
        "showLogarithmic": False,
        "leAdjusted": True,
        "maximize": False,
        "showLabels": True,
        "decimals": "auto",
        "showLogo": True,
        "showQrCode": True,
        "showCaption": True,
        "showTitle": True,
        "userColors": None,
        "darkMode": False,
    },
    ui={
        "baseline": toggleable(),
        "predictionInterval": conditional(field_is("showBaseline", True)),
        "logarithmic": toggleable(),
        "maximize": toggleable(),
        "labels": toggleable(),
        "cumulative": hidden(),
        "percentage": hidden(),
        "showTotal": hidden(),
    },
    owned_fields=("chartStyle",),
)

EXCESS = View(
    id="excess",
    label="Excess Mortality",
    defaults={
        "chartStyle": "bar",
        "showBaseline": True,
        "showPredictionInterval": False,
        "showPercentage": True,
        "cumulative": False,
        "showLogarithmic": False,
        "isExcess": True,
    },
    constraints=(
        Constraint(
            when="True",
            apply={"showBaseline": True},
            reason="Excess mortality requires baseline",
            priority=2,
        ),
        Constraint(
            when="True",
            apply={"showLogarithmic": False},
            reason="Logarithmic scale not available in excess mode",
            priority=2,
        ),
        Constraint(
            when="chartStyle == 'matrix'",
            apply={"chartStyle": "bar"},
            reason="Matrix chart style not supported in excess view",
            priority=2,
        ),
    ),
    ui={
        "baseline": required(True),
        "predictionInterval": toggleable(),
        "logarithmic": hidden(),
        "maximize": conditional(field_is("chartStyle", "bar")),
        "labels": toggleable(),
        "cumulative": toggleable(),
        "percentage": toggleable(),
        "showTotal": conditional(all_of(field_is("chartStyle", "bar"), field_is("cumulative", True))),
    },
    compatibility={"type": ("cmr", "asmr", "deaths")},
    owned_fields=("chartStyle",),
)

ZSCORE = View(
    id="zscore",
    label="Z-Score Analysis",
    defaults={
        "chartStyle": "line",
        "showBaseline": True,
        "showPredictionInterval": False,
        "showLogarithmic": False,
        "isZScore": True,
    },
    constraints=(
        Constraint(
            when="True",
            apply={"showBaseline": True},
            reason="Z-score calculation requires baseline data",
            priority=2,
        ),
        Constraint(
            when="True",
            apply={"showLogarithmic": False},
            reason="Logarithmic scale not compatible with z-score analysis",
            priority=2,
        ),
        Constraint(
            when="True",
            apply={"cumulative": False, "showPercentage": False},
            reason="Z-scores show deviations, not cumulative or percentage values",
            priority=2,
        ),
        Constraint(
            when="chartStyle == 'matrix'",
            apply={"chartStyle": "line"},
            reason="Matrix chart style not supported in z-score view",
            priority=2,
        ),
    ),
    ui={
        "baseline": hidden(),
        "predictionInterval": toggleable(),
        "logarithmic": hidden(),
        "maximize": conditional(field_is("chartStyle", "bar")),
        "labels": toggleable(),
        "cumulative": hidden(),
        "percentage": hidden(),
        "showTotal": hidden(),
    },
    compatibility={
        "type": ("cmr", "asmr", "deaths"),
        "chartType": ("yearly", "fluseason", "midyear"),
    },
    owned_fields=("chartStyle",),
)

EXPLORER_VIEWS = ViewRegistry(
    views=(MORTALITY, EXCESS, ZSCORE),
    base="mortality",
    flags=(
        DetectionFlag(key="zs", value="1", view="zscore"),
        DetectionFlag(key="e", value="1", view="excess"),
        DetectionFlag(key="isExcess", value="true", view="excess"),
    ),
)

EXPLORER_CONSTRAINTS = (
    Constraint(
        when="type == 'population'",
        apply={"showBaseline": False, "showPredictionInterval": False},
        reason="Population type does not support baseline or prediction intervals",
        priority=2,
    ),
    Constraint(
        when="type in ('asmr', 'le')",
        apply={"ageGroups": ["all"]},
        reason='ASMR and Life Expectancy only support "all" age group',
        priority=2,
    ),
    Constraint(
        when="chartStyle == 'matrix'",
        apply={
            "showBaseline": False,
            "showPredictionInterval": False,
            "maximize": False,
            "showLogarithmic": False,
        },
        reason="Matrix style disables baseline, PI, maximize, and logarithmic",
        priority=2,
    ),
    Constraint(
        when=field_is("view", "excess"),
        apply={"isExcess": True, "isZScore": False},
        reason="Excess view sets isExcess=true",
        priority=2,
    ),
    Constraint(
        when=field_is("view", "zscore"),
        apply={"isExcess": False, "isZScore": True},
        reason="Z-Score view sets isZScore=true",
        priority=2,
    ),
    Constraint(
        when=field_is("view", "mortality"),
        apply={"isExcess": False, "isZScore": False},
        reason="Mortality view clears view flags",
        priority=2,
    ),
    Constraint(
        when="showBaseline is False",
        apply={"showPredictionInterval": False},
        reason="Prediction intervals require baseline",
        priority=1,
    ),
    Constraint(
        when="cumulative is False",
        apply={"showTotal": False},
        reason="Show total requires cumulative mode",
        priority=1,
    ),
    Constraint(
        when="showBaseline is True and view == 'mortality'",
        apply={"showPredictionInterval": True},
        reason="Restore prediction interval to default when baseline is enabled",
        allow_user_override=True,
        priority=0,
    ),
)

EXPLORER_SCHEMA = Schema(
    name="explorer",
    fields=EXPLORER_FIELDS,
    views=EXPLORER_VIEWS,
    constraints=EXPLORER_CONSTRAINTS,
)

FIELD_UPDATE_STRATEGY: dict[str, str] = {
    "countries": UPDATE_DOWNLOAD,
    "type": UPDATE_DOWNLOAD,
    "chartType": UPDATE_DOWNLOAD,
    "ageGroups": UPDATE_DOWNLOAD,
    "baselineMethod": UPDATE_DATASET,
    "standardPopulation": UPDATE_DATASET,
    "baselineDateFrom": UPDATE_DATASET,
    "baselineDateTo": UPDATE_DATASET,
    "sliderStart": UPDATE_DATASET,
    "dateFrom": UPDATE_FILTER,
    "dateTo": UPDATE_FILTER,
    "chartStyle": UPDATE_FILTER,
    "view": UPDATE_FILTER,
    "isExcess": UPDATE_FILTER,
    "showBaseline": UPDATE_FILTER,
    "cumulative": UPDATE_FILTER,
    "showPredictionInterval": UPDATE_FILTER,
    "showPercentage": UPDATE_FILTER,
    "showTotal": UPDATE_FILTER,
    "userColors": UPDATE_FILTER,
    "showLabels": UPDATE_NONE,
    "maximize": UPDATE_NONE,
    "showLogarithmic": UPDATE_NONE,
    "showLogo": UPDATE_NONE,
    "showQrCode": UPDATE_NONE,
    "showCaption": UPDATE_NONE,
    "showTitle": UPDATE_NONE,
    "decimals": UPDATE_NONE,
}


def update_type_for(field: str, state: Mapping[str, Any] | None = None) -> str:
    """Data refresh a change of `field` needs: download, update, filter or none."""
    name = field[1:] if field.startswith("_") else field
    if name == "dateRange":
        return UPDATE_FILTER
    # cumulative sums feed the baseline fit unless the method is auto
    if name == "cumulative" and state is not None and state.get("baselineMethod") != "auto":
        return UPDATE_DATASET
    return FIELD_UPDATE_STRATEGY.get(name, UPDATE_NONE)


def requires_download(field: str, state: Mapping[str, Any] | None = None) -> bool:
    return update_type_for(field, state) == UPDATE_DOWNLOAD


def requires_dataset_update(field: str, state: Mapping[str, Any] | None = None) -> bool:
    return update_type_for(field, state) == UPDATE_DATASET


def requires_filter_update(field: str, state: Mapping[str, Any] | None = None) -> bool:
    return update_type_for(field, state) in {UPDATE_DOWNLOAD, UPDATE_DATASET, UPDATE_FILTER}
