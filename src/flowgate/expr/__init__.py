from .nodes import (
    And,
    Comparison,
    EventTypeEquals,
    ExpressionNode,
    FunctionCall,
    Literal,
    Not,
    Or,
    PropertyAccess,
)
from .parser import parse_expression
from .safety import ExpressionPolicy, scan, validate_expression_safety

__all__ = [
    "And",
    "Comparison",
    "EventTypeEquals",
    "ExpressionNode",
    "ExpressionPolicy",
    "FunctionCall",
    "Literal",
    "Not",
    "Or",
    "PropertyAccess",
    "parse_expression",
    "scan",
    "validate_expression_safety",
]
