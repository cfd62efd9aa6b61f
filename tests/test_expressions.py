import pytest

from state_engine.expressions import (
    UnsafeExpressionError,
    compile_expression,
    evaluate_program,
    extract_expression_variables,
    safe_eval,
)


def test_safe_eval_blocks_unsafe_calls() -> None:
    with pytest.raises(UnsafeExpressionError):
        safe_eval("__import__('os').system('echo bad')", {})


def test_safe_eval_blocks_attribute_access() -> None:
    with pytest.raises(UnsafeExpressionError, match="Attribute"):
        safe_eval("chartStyle.__class__ == str", {"chartStyle": "bar"})


def test_safe_eval_rejects_arithmetic() -> None:
    with pytest.raises(UnsafeExpressionError):
        compile_expression("decimals + 1 > 2")


def test_invalid_syntax_is_reported_as_unsafe() -> None:
    with pytest.raises(UnsafeExpressionError, match="Invalid expression"):
        compile_expression("showBaseline ==")


def test_compile_expression_reusable_program() -> None:
    program = compile_expression("type in ('asmr', 'le')")
    assert evaluate_program(program, {"type": "asmr"}) is True
    assert evaluate_program(program, {"type": "population"}) is False


def test_boolean_predicates() -> None:
    assert safe_eval("showBaseline == True and view == 'mortality'", {"showBaseline": True, "view": "mortality"})
    assert not safe_eval("not showBaseline", {"showBaseline": True})
    assert safe_eval("len(countries) > 1", {"countries": ["USA", "SWE"]})


def test_evaluation_does_not_mutate_state() -> None:
    state = {"showBaseline": False}
    safe_eval("showBaseline == False", state)
    assert state == {"showBaseline": False}


def test_extract_expression_variables_skips_functions() -> None:
    assert extract_expression_variables("len(countries) > 1 and view == 'excess'") == {"countries", "view"}
