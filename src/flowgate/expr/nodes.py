# expr/nodes.py
"""
Expression AST.

Every node is immutable. `source()` returns the bare expression text used
when nodes nest; `render()` wraps it in `${{ }}` and is the only way
interpolation text leaves this package.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

LiteralValue = Union[str, int, float, bool, None]


class ExpressionNode:
    def source(self) -> str:
        raise NotImplementedError

    def render(self) -> str:
        return f"${{{{ {self.source()} }}}}"

    def children(self) -> tuple["ExpressionNode", ...]:
        return ()

    def walk(self) -> Iterator["ExpressionNode"]:
        """Depth-first, left-to-right traversal including self."""
        yield self
        for child in self.children():
            yield from child.walk()

    def property_paths(self) -> list[str]:
        return [n.path for n in self.walk() if isinstance(n, PropertyAccess)]

    def __str__(self) -> str:
        return self.source()


def quote_string(value: str) -> str:
    # single quotes are escaped by doubling them
    return "'" + value.replace("'", "''") + "'"


@dataclass(frozen=True)
class Literal(ExpressionNode):
    value: LiteralValue

    def source(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, str):
            return quote_string(self.value)
        return repr(self.value)


@dataclass(frozen=True)
class PropertyAccess(ExpressionNode):
    path: str

    @property
    def segments(self) -> list[str]:
        return split_path(self.path)

    @property
    def root(self) -> str:
        return self.segments[0]

    def source(self) -> str:
        return self.path


@dataclass(frozen=True)
class FunctionCall(ExpressionNode):
    """Zero-argument status function such as `always()` or `cancelled()`."""
    name: str

    def source(self) -> str:
        return f"{self.name}()"


@dataclass(frozen=True)
class Comparison(ExpressionNode):
    left: ExpressionNode
    op: str
    right: ExpressionNode

    def source(self) -> str:
        return f"{self.left.source()} {self.op} {self.right.source()}"

    def children(self) -> tuple[ExpressionNode, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class And(ExpressionNode):
    left: ExpressionNode
    right: ExpressionNode

    def source(self) -> str:
        return f"({self.left.source()}) && ({self.right.source()})"

    def children(self) -> tuple[ExpressionNode, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class Or(ExpressionNode):
    left: ExpressionNode
    right: ExpressionNode

    def source(self) -> str:
        return f"({self.left.source()}) || ({self.right.source()})"

    def children(self) -> tuple[ExpressionNode, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class Not(ExpressionNode):
    child: ExpressionNode

    def source(self) -> str:
        if isinstance(self.child, (PropertyAccess, FunctionCall, Literal)):
            return f"!{self.child.source()}"
        return f"!({self.child.source()})"

    def children(self) -> tuple[ExpressionNode, ...]:
        return (self.child,)


@dataclass(frozen=True)
class EventTypeEquals(ExpressionNode):
    """Sugar for `github.event_name == '<name>'`."""
    name: str

    def source(self) -> str:
        return f"github.event_name == {quote_string(self.name)}"

    def children(self) -> tuple[ExpressionNode, ...]:
        return (PropertyAccess("github.event_name"),)


def split_path(path: str) -> list[str]:
    """
    Split a property path into segments.

    `github.event.release.assets[0].id` -> ["github", "event", "release", "assets", "[0]", "id"]
    """
    segments: list[str] = []
    for part in path.split("."):
        while "[" in part:
            head, _, rest = part.partition("[")
            if head:
                segments.append(head)
            index, _, part = rest.partition("]")
            segments.append(f"[{index}]")
        if part:
            segments.append(part)
    return segments
