from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Any, Callable, Mapping

ALLOWED_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "bool": bool,
}

ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp,
    ast.UnaryOp,
    ast.Compare,
    ast.Name,
    ast.Load,
    ast.Constant,
    ast.Tuple,
    ast.List,
    ast.And,
    ast.Or,
    ast.Not,
    ast.Eq,
    ast.NotEq,
    ast.In,
    ast.NotIn,
    ast.Is,
    ast.IsNot,
    ast.Gt,
    ast.GtE,
    ast.Lt,
    ast.LtE,
    ast.Call,
)


class UnsafeExpressionError(ValueError):
    """Raised when a predicate expression includes unsafe syntax."""


@dataclass(slots=True, frozen=True)
class ExpressionProgram:
    """Validated, compiled predicate that can be reused across resolutions."""

    source: str
    code: Any


class _ReferencedVariableVisitor(ast.NodeVisitor):
    def __init__(self) -> None:
        self.referenced_variables: set[str] = set()

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id not in ALLOWED_FUNCTIONS:
            self.referenced_variables.add(node.id)


def extract_expression_variables(expression: str) -> set[str]:
    tree = ast.parse(expression, mode="eval")
    visitor = _ReferencedVariableVisitor()
    visitor.visit(tree)
    return visitor.referenced_variables


def _validate_ast(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, ALLOWED_NODES):
            raise UnsafeExpressionError(f"Unsupported expression node: {type(node).__name__}")
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in ALLOWED_FUNCTIONS:
                raise UnsafeExpressionError("Unsupported function call")


def compile_expression(expression: str) -> ExpressionProgram:
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise UnsafeExpressionError(f"Invalid expression '{expression}': {exc.msg}") from exc
    _validate_ast(tree)
    return ExpressionProgram(source=expression, code=compile(tree, "<constraint>", "eval"))


def evaluate_program(program: ExpressionProgram, state: Mapping[str, Any]) -> Any:
    return eval(program.code, {"__builtins__": {}, **ALLOWED_FUNCTIONS}, dict(state))


def safe_eval(expression: str, state: Mapping[str, Any]) -> Any:
    return evaluate_program(compile_expression(expression), state)
