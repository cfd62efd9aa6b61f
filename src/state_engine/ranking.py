"""Country ranking table: fields, views and business rules."""

from __future__ import annotations

from typing import Any, Mapping

from .conditions import all_of, field_is
from .constraints import Constraint
from .fields import (
    Field,
    FieldRegistry,
    LegacyKey,
    decode_bool,
    decode_choice,
    decode_inverted_bool,
    encode_inverted_bool,
)
from .resolver import Schema
from .views import DetectionFlag, View, ViewRegistry, conditional, hidden, toggleable

METRIC_TYPES = ("cmr", "asmr", "le")
LEGACY_ASMR_KEY = "a"


def decode_legacy_asmr(raw: str) -> str:
    return "asmr" if decode_bool(raw) else "cmr"


def _totals_only(state: Mapping[str, Any]) -> bool:
    return state.get("showTotalsOnly") is True


RANKING_FIELDS = FieldRegistry(
    fields=(
        Field(name="periodOfTime", key="p"),
        Field(name="jurisdictionType", key="j"),
        Field(
            name="metricType",
            key="m",
            decode=decode_choice(*METRIC_TYPES),
            legacy_keys=(LegacyKey(key=LEGACY_ASMR_KEY, decode=decode_legacy_asmr),),
        ),
        Field(name="standardPopulation", key="sp"),
        Field.boolean("showTotals", "t"),
        Field.boolean("showTotalsOnly", "to"),
        Field.boolean("showPercentage", "r"),
        Field.boolean("showPI", "pi"),
        Field.boolean("cumulative", "c"),
        Field(name="hideIncomplete", key="i", decode=decode_inverted_bool, encode=encode_inverted_bool),
        Field(name="decimalPrecision", key="dp"),
        Field(name="baselineMethod", key="bm"),
        Field(name="baselineDateFrom", key="bf"),
        Field(name="baselineDateTo", key="bt"),
        Field(name="dateFrom", key="df"),
        Field(name="dateTo", key="dt"),
    )
)

RELATIVE = View(
    id="relative",
    label="Excess Mortality",
    defaults={
        "periodOfTime": "fluseason",
        "jurisdictionType": "countries",
        "metricType": "asmr",
        "standardPopulation": "who",
        "showTotals": True,
        "showTotalsOnly": False,
        "showPercentage": True,
        "showPI": False,
        "cumulative": False,
        "hideIncomplete": True,
        "decimalPrecision": "1",
        "baselineMethod": "mean",
        "baselineDateFrom": None,
        "baselineDateTo": None,
        "dateFrom": None,
        "dateTo": None,
    },
    ui={
        "standardPopulation": conditional(field_is("metricType", "asmr")),
        "baselineMethod": toggleable(),
        "baselinePeriod": toggleable(),
        "percentage": toggleable(),
        "predictionInterval": conditional(
            all_of(field_is("cumulative", False), field_is("showTotalsOnly", False))
        ),
        "totalsOnly": conditional(field_is("showTotals", True)),
        "cumulative": toggleable(),
        "showTotal": conditional(field_is("cumulative", True)),
    },
    owned_fields=("showPercentage", "showPI"),
)

ABSOLUTE = View(
    id="absolute",
    label="Raw Values",
    defaults={
        "showPercentage": False,
        "showPI": False,
    },
    constraints=(
        Constraint(
            when=field_is("view", "absolute"),
            apply={"showPercentage": False, "showPI": False},
            reason="Percentage and prediction intervals require baseline (relative mode)",
            priority=2,
        ),
    ),
    ui={
        "standardPopulation": conditional(field_is("metricType", "asmr")),
        "baselineMethod": hidden(),
        "baselinePeriod": hidden(),
        "percentage": hidden(),
        "predictionInterval": hidden(),
        "totalsOnly": conditional(field_is("showTotals", True)),
        "cumulative": toggleable(),
        "showTotal": conditional(field_is("cumulative", True)),
    },
    owned_fields=("showPercentage", "showPI"),
)

RANKING_VIEWS = ViewRegistry(
    views=(RELATIVE, ABSOLUTE),
    base="relative",
    flags=(DetectionFlag(key="e", value="0", view="absolute"),),
)

RANKING_CONSTRAINTS = (
    Constraint(
        when="showTotals is False",
        apply={"showTotalsOnly": False},
        reason="Show totals only requires show totals to be enabled",
        priority=1,
    ),
    Constraint(
        when="cumulative is True",
        apply={"showPI": False},
        reason="Prediction intervals are not available in cumulative mode",
        priority=1,
    ),
    Constraint(
        when=_totals_only,
        apply={"showPI": False},
        reason="Prediction intervals are not available in totals-only mode",
        priority=1,
    ),
)

RANKING_SCHEMA = Schema(
    name="ranking",
    fields=RANKING_FIELDS,
    views=RANKING_VIEWS,
    constraints=RANKING_CONSTRAINTS,
)
