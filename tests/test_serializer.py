from state_engine.explorer import EXPLORER_SCHEMA, EXPLORER_VIEWS
from state_engine.serializer import json_dumps, serialize, to_query_string


def test_defaults_serialize_to_nothing() -> None:
    assert serialize(EXPLORER_SCHEMA, EXPLORER_VIEWS.defaults_for("mortality")) == {}


def test_view_flag_comes_first() -> None:
    state = {**EXPLORER_VIEWS.defaults_for("excess"), "countries": ["DEU"], "cumulative": True}
    params = serialize(EXPLORER_SCHEMA, state)

    assert list(params) == ["e", "c", "ce"]
    assert params == {"e": "1", "c": "DEU", "ce": "1"}


def test_values_compare_against_active_view_defaults() -> None:
    # bar is the excess default but not the mortality default
    excess = {**EXPLORER_VIEWS.defaults_for("excess"), "chartStyle": "bar"}
    mortality = {**EXPLORER_VIEWS.defaults_for("mortality"), "chartStyle": "bar"}

    assert "cs" not in serialize(EXPLORER_SCHEMA, excess)
    assert serialize(EXPLORER_SCHEMA, mortality) == {"cs": "bar"}


def test_unset_optional_values_are_omitted() -> None:
    state = {**EXPLORER_VIEWS.defaults_for("mortality"), "dateFrom": "2015", "dateTo": None}
    assert serialize(EXPLORER_SCHEMA, state) == {"df": "2015"}


def test_query_string_keeps_commas() -> None:
    assert to_query_string({"e": "1", "c": "USA,SWE"}) == "e=1&c=USA,SWE"


def test_json_dumps_is_canonical() -> None:
    assert json_dumps({"b": [1, 2], "a": True}) == '{"a":true,"b":[1,2]}'
