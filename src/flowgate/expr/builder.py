# expr/builder.py
"""Constructors for gating conditions. All pipeline guards are built here."""
from __future__ import annotations

from functools import reduce
from typing import Union

from ..errors import DeveloperError, ExpressionSyntaxError
from .nodes import (
    And,
    Comparison,
    EventTypeEquals,
    ExpressionNode,
    FunctionCall,
    Literal,
    LiteralValue,
    Not,
    Or,
    PropertyAccess,
)
from .parser import COMPARISON_OPS, parse_expression, strip_wrapper

Operand = Union[ExpressionNode, str]


def property_access(path: str) -> PropertyAccess:
    return PropertyAccess(path)


def string_literal(value: str) -> Literal:
    return Literal(value)


def literal(value: LiteralValue) -> Literal:
    return Literal(value)


def function_call(name: str) -> FunctionCall:
    return FunctionCall(name)


def _operand(value: Operand) -> ExpressionNode:
    # bare strings on the left-hand side are property paths
    if isinstance(value, ExpressionNode):
        return value
    return PropertyAccess(value)


def comparison(lhs: Operand, op: str, rhs: ExpressionNode) -> Comparison:
    if op not in COMPARISON_OPS:
        raise DeveloperError(f"unsupported comparison operator {op!r}")
    return Comparison(_operand(lhs), op, rhs)


def equals(lhs: Operand, value: Union[ExpressionNode, LiteralValue]) -> Comparison:
    rhs = value if isinstance(value, ExpressionNode) else Literal(value)
    return comparison(lhs, "==", rhs)


def not_equals(lhs: Operand, value: Union[ExpressionNode, LiteralValue]) -> Comparison:
    rhs = value if isinstance(value, ExpressionNode) else Literal(value)
    return comparison(lhs, "!=", rhs)


def not_(node: ExpressionNode) -> Not:
    return Not(node)


def and_(*nodes: ExpressionNode) -> ExpressionNode:
    """Left fold in caller order: and_(a, b, c) == And(And(a, b), c)."""
    if not nodes:
        raise DeveloperError("and_() needs at least one operand")
    return reduce(And, nodes)


def or_(*nodes: ExpressionNode) -> ExpressionNode:
    if not nodes:
        raise DeveloperError("or_() needs at least one operand")
    return reduce(Or, nodes)


def event_type_equals(name: str) -> EventTypeEquals:
    return EventTypeEquals(name)


def parse_condition(text: str, *, field: str = "if") -> ExpressionNode:
    """
    Turn a user-declared `if:` value into an AST.

    Accepts both `${{ expr }}` and bare `expr`. Syntax errors are re-raised
    with `field` set so the message points at the frontmatter key.
    """
    inner = strip_wrapper(text)
    try:
        return parse_expression(inner)
    except ExpressionSyntaxError as e:
        raise ExpressionSyntaxError(field, e.message, e.expression, e.position) from e


# ---------------------------------------------------------------------
# Guards used by the pipeline stages
# ---------------------------------------------------------------------

def job_output(job: str, output: str) -> PropertyAccess:
    return PropertyAccess(f"needs.{job}.outputs.{output}")


def step_output(step_id: str, output: str) -> PropertyAccess:
    return PropertyAccess(f"steps.{step_id}.outputs.{output}")


def step_output_is_true(step_id: str, output: str) -> Comparison:
    return equals(step_output(step_id, output), "true")


def activated_check(job: str = "pre_activation") -> Comparison:
    return equals(job_output(job, "activated"), "true")


def agent_not_skipped(job: str = "agent") -> Comparison:
    return not_equals(f"needs.{job}.result", "skipped")


def detection_succeeded(job: str = "detection") -> Comparison:
    return equals(job_output(job, "success"), "true")


def not_cancelled() -> Not:
    return Not(FunctionCall("cancelled"))


def always() -> FunctionCall:
    return FunctionCall("always")


def workflow_run_repo_safety() -> ExpressionNode:
    """
    Only run for workflow_run events coming from this repository and not
    from a fork. Other events pass through.
    """
    return or_(
        not_equals("github.event_name", "workflow_run"),
        and_(
            equals("github.event.workflow_run.repository.id", property_access("github.repository_id")),
            not_(property_access("github.event.workflow_run.repository.fork")),
        ),
    )
