# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class ConfigurationError(Exception):
    """
    User-correctable problem in the workflow frontmatter.

    `field` is the dotted frontmatter location (e.g. "jobs.pre-activation")
    so the CLI can point the user at it.
    """
    field: str
    message: str

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


@dataclass
class ExpressionSyntaxError(ConfigurationError):
    """Malformed `${{ }}` expression. `position` is a 0-based offset into `expression`."""
    expression: str = ""
    position: int = 0

    def __str__(self) -> str:
        base = f"invalid expression {self.expression!r}: {self.message} (at offset {self.position})"
        if self.field:
            return f"{self.field}: {base}"
        return base


@dataclass
class ExpressionFinding:
    """One unauthorized placeholder found while scanning text."""
    expression: str
    reason: str
    suggestions: List[str] = field(default_factory=list)

    def format(self) -> str:
        line = f"- {self.expression}"
        if self.suggestions:
            line += f" (did you mean: {', '.join(self.suggestions)})"
        return f"{line}: {self.reason}"


@dataclass
class UnauthorizedExpressionError(Exception):
    """All unauthorized expressions of one input, reported together."""
    findings: List[ExpressionFinding]

    def __str__(self) -> str:
        lines = [f"{len(self.findings)} unauthorized expression(s) found:"]
        lines.extend(f.format() for f in self.findings)
        lines.append(
            "Only workflow metadata, declared inputs, env, allowed secrets and "
            "needs.<job>.outputs.<name> / steps.<id>.outputs.<name> may be interpolated."
        )
        return "\n".join(lines)


class DeveloperError(Exception):
    """
    Internal invariant violation. Not something the workflow author can fix.
    """

    def __str__(self) -> str:
        return f"developer error: {super().__str__()}"


@dataclass
class MissingJobError(DeveloperError):
    job: str
    missing: str
    known: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"developer error: job '{self.job}' needs missing job '{self.missing}'. "
            f"Known jobs: {self.known}"
        )


@dataclass
class CycleError(DeveloperError):
    stuck: List[str]

    def __str__(self) -> str:
        return f"developer error: job graph has a cycle. Stuck jobs: {self.stuck}"


@dataclass
class StageError(Exception):
    """Wraps any failure with the name of the pipeline stage being built."""
    stage: str
    cause: Exception

    def __str__(self) -> str:
        return f"failed to build {self.stage} job: {self.cause}"
