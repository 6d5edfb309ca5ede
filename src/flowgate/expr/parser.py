# expr/parser.py
"""
Tokenizer and recursive-descent parser for the `${{ }}` micro-language.

Grammar (lowest precedence first):

    or_expr    := and_expr ("||" and_expr)*
    and_expr   := unary ("&&" unary)*
    unary      := "!" unary | comparison
    comparison := primary (("==" | "!=" | "<" | "<=" | ">" | ">=") primary)?
    primary    := STRING | NUMBER | "true" | "false" | "null"
                | PATH | NAME "(" ")" | "(" or_expr ")"
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from ..errors import ExpressionSyntaxError
from .nodes import (
    And,
    Comparison,
    ExpressionNode,
    FunctionCall,
    Literal,
    Not,
    Or,
    PropertyAccess,
)

COMPARISON_OPS = ("==", "!=", "<=", ">=", "<", ">")

_PATH_RE = re.compile(
    r"[A-Za-z_][A-Za-z0-9_-]*(?:\.(?:[A-Za-z_][A-Za-z0-9_-]*|\*)|\[\d+\])*"
)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

KEYWORDS = {"true": True, "false": False, "null": None}


@dataclass(frozen=True)
class Token:
    kind: str  # "op" | "string" | "number" | "path" | "lparen" | "rparen" | "eof"
    text: str
    pos: int
    value: object = None


def tokenize(expression: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(expression)
    while i < n:
        ch = expression[i]
        if ch.isspace():
            i += 1
            continue
        if ch == "(":
            tokens.append(Token("lparen", ch, i))
            i += 1
            continue
        if ch == ")":
            tokens.append(Token("rparen", ch, i))
            i += 1
            continue

        two = expression[i:i + 2]
        if two in ("&&", "||", "==", "!=", "<=", ">="):
            tokens.append(Token("op", two, i))
            i += 2
            continue
        if ch in "!<>":
            tokens.append(Token("op", ch, i))
            i += 1
            continue

        if ch == "'":
            start = i
            value, i = _read_string(expression, i)
            tokens.append(Token("string", expression[start:i], start, value))
            continue

        m = _NUMBER_RE.match(expression, i)
        if m and (ch.isdigit() or ch == "-"):
            text = m.group(0)
            value = float(text) if "." in text else int(text)
            tokens.append(Token("number", text, i, value))
            i = m.end()
            continue

        m = _PATH_RE.match(expression, i)
        if m:
            tokens.append(Token("path", m.group(0), i))
            i = m.end()
            continue

        raise ExpressionSyntaxError("", f"unexpected character {ch!r}", expression, i)

    tokens.append(Token("eof", "", n))
    return tokens


def _read_string(expression: str, start: int) -> tuple[str, int]:
    i = start + 1
    out: List[str] = []
    while i < len(expression):
        ch = expression[i]
        if ch == "'":
            if expression[i + 1:i + 2] == "'":
                out.append("'")
                i += 2
                continue
            return "".join(out), i + 1
        out.append(ch)
        i += 1
    raise ExpressionSyntaxError("", "unterminated string literal", expression, start)


class _Parser:
    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    def peek(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def error(self, message: str, tok: Optional[Token] = None) -> ExpressionSyntaxError:
        tok = tok or self.peek()
        return ExpressionSyntaxError("", message, self.expression, tok.pos)

    def parse(self) -> ExpressionNode:
        if self.peek().kind == "eof":
            raise self.error("empty expression")
        node = self.or_expr()
        if self.peek().kind != "eof":
            raise self.error(f"unexpected token {self.peek().text!r}")
        return node

    def or_expr(self) -> ExpressionNode:
        node = self.and_expr()
        while self.peek().kind == "op" and self.peek().text == "||":
            self.advance()
            node = Or(node, self.and_expr())
        return node

    def and_expr(self) -> ExpressionNode:
        node = self.unary()
        while self.peek().kind == "op" and self.peek().text == "&&":
            self.advance()
            node = And(node, self.unary())
        return node

    def unary(self) -> ExpressionNode:
        if self.peek().kind == "op" and self.peek().text == "!":
            self.advance()
            return Not(self.unary())
        return self.comparison()

    def comparison(self) -> ExpressionNode:
        left = self.primary()
        tok = self.peek()
        if tok.kind == "op" and tok.text in COMPARISON_OPS:
            self.advance()
            right = self.primary()
            return Comparison(left, tok.text, right)
        return left

    def primary(self) -> ExpressionNode:
        tok = self.advance()
        if tok.kind == "string":
            return Literal(tok.value)
        if tok.kind == "number":
            return Literal(tok.value)
        if tok.kind == "lparen":
            node = self.or_expr()
            if self.peek().kind != "rparen":
                raise self.error("expected ')'")
            self.advance()
            return node
        if tok.kind == "path":
            if tok.text in KEYWORDS:
                return Literal(KEYWORDS[tok.text])
            if self.peek().kind == "lparen":
                return self.function_call(tok)
            return PropertyAccess(tok.text)
        if tok.kind == "eof":
            raise self.error("unexpected end of expression", tok)
        raise self.error(f"unexpected token {tok.text!r}", tok)

    def function_call(self, name_tok: Token) -> ExpressionNode:
        if "." in name_tok.text or "[" in name_tok.text:
            raise self.error(f"invalid function name {name_tok.text!r}", name_tok)
        self.advance()  # "("
        if self.peek().kind != "rparen":
            raise self.error(
                f"function {name_tok.text}() does not take arguments", name_tok
            )
        self.advance()
        return FunctionCall(name_tok.text)


def parse_expression(expression: str) -> ExpressionNode:
    """
    Parse the inside of a `${{ }}` placeholder.

    Raises ExpressionSyntaxError on malformed input.
    """
    return _Parser(expression.strip()).parse()


def strip_wrapper(text: str) -> str:
    """`${{ x }}` -> `x`; other text is returned stripped."""
    stripped = text.strip()
    if stripped.startswith("${{") and stripped.endswith("}}"):
        return stripped[3:-2].strip()
    return stripped
