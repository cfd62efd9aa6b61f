from state_engine.conditions import all_of, any_of, condition_fields, evaluate_condition, field_is, field_is_not


def test_field_is_uses_strict_equality() -> None:
    assert evaluate_condition(field_is("showBaseline", True), {"showBaseline": True})
    assert not evaluate_condition(field_is("showBaseline", True), {"showBaseline": 1})
    assert not evaluate_condition(field_is("showBaseline", True), {})


def test_field_is_not() -> None:
    assert evaluate_condition(field_is_not("chartStyle", "matrix"), {"chartStyle": "bar"})
    assert not evaluate_condition(field_is_not("chartStyle", "matrix"), {"chartStyle": "matrix"})


def test_combinators() -> None:
    state = {"chartStyle": "bar", "cumulative": False}
    assert not evaluate_condition(all_of(field_is("chartStyle", "bar"), field_is("cumulative", True)), state)
    assert evaluate_condition(any_of(field_is("chartStyle", "bar"), field_is("cumulative", True)), state)
    assert evaluate_condition(all_of(), state)
    assert not evaluate_condition(any_of(), state)


def test_list_values_compare_element_wise() -> None:
    assert evaluate_condition(field_is("ageGroups", ["all"]), {"ageGroups": ["all"]})
    assert not evaluate_condition(field_is("ageGroups", ["all"]), {"ageGroups": ["all", "0-14"]})


def test_malformed_conditions_evaluate_false() -> None:
    assert not evaluate_condition(None, {"x": 1})
    assert not evaluate_condition({"field": "x"}, {"x": 1})
    assert not evaluate_condition({"and": "nope"}, {})
    assert not evaluate_condition({"field": "", "is": None}, {})
    assert not evaluate_condition("x == 1", {"x": 1})


def test_condition_fields() -> None:
    condition = all_of(field_is("chartStyle", "bar"), any_of(field_is("cumulative", True), {"bogus": 1}))
    assert condition_fields(condition) == {"chartStyle", "cumulative"}
