# expr/safety.py
"""
Expression safety validator.

Every `${{ ... }}` placeholder in a piece of text is parsed and each property
path it references is checked against a bounded set of sources. Findings are
collected for the whole input and raised together.
"""
from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterator, List, Optional, Tuple

from ..errors import ExpressionFinding, ExpressionSyntaxError, UnauthorizedExpressionError
from .nodes import FunctionCall, PropertyAccess, split_path
from .parser import parse_expression

logger = logging.getLogger(__name__)

OPEN = "${{"
CLOSE = "}}"

ALLOWED_GITHUB_PATHS: FrozenSet[str] = frozenset(
    [
        "github.event.after",
        "github.event.before",
        "github.event.action",
        "github.event.check_run.id",
        "github.event.check_run.number",
        "github.event.check_suite.id",
        "github.event.check_suite.number",
        "github.event.comment.id",
        "github.event.deployment.id",
        "github.event.deployment.environment",
        "github.event.deployment_status.id",
        "github.event.discussion.number",
        "github.event.discussion.title",
        "github.event.discussion.category.name",
        "github.event.head_commit.id",
        "github.event.installation.id",
        "github.event.issue.number",
        "github.event.issue.state",
        "github.event.issue.title",
        "github.event.label.id",
        "github.event.milestone.id",
        "github.event.milestone.number",
        "github.event.organization.id",
        "github.event.page.id",
        "github.event.project.id",
        "github.event.project_card.id",
        "github.event.project_column.id",
        "github.event.pull_request.number",
        "github.event.pull_request.state",
        "github.event.pull_request.title",
        "github.event.pull_request.head.sha",
        "github.event.pull_request.base.sha",
        "github.event.release.assets[0].id",
        "github.event.release.id",
        "github.event.release.name",
        "github.event.release.tag_name",
        "github.event.repository.id",
        "github.event.repository.default_branch",
        "github.event.review.id",
        "github.event.review_comment.id",
        "github.event.sender.id",
        "github.event.workflow_job.id",
        "github.event.workflow_job.run_id",
        "github.event.workflow_run.id",
        "github.event.workflow_run.number",
        "github.event.workflow_run.conclusion",
        "github.event.workflow_run.html_url",
        "github.event.workflow_run.head_sha",
        "github.event.workflow_run.run_number",
        "github.event.workflow_run.event",
        "github.event.workflow_run.status",
        "github.event.workflow_run.repository.id",
        "github.event.workflow_run.repository.fork",
        "github.actor",
        "github.event_name",
        "github.job",
        "github.owner",
        "github.ref",
        "github.repository",
        "github.repository_id",
        "github.repository_owner",
        "github.run_attempt",
        "github.run_id",
        "github.run_number",
        "github.server_url",
        "github.sha",
        "github.workflow",
        "github.workspace",
    ]
)

DANGEROUS_PROPERTY_NAMES: FrozenSet[str] = frozenset(
    [
        "constructor",
        "__proto__",
        "prototype",
        "__defineGetter__",
        "__defineSetter__",
        "__lookupGetter__",
        "__lookupSetter__",
        "hasOwnProperty",
        "isPrototypeOf",
        "propertyIsEnumerable",
        "toString",
        "valueOf",
        "toLocaleString",
    ]
)

STATUS_FUNCTIONS: FrozenSet[str] = frozenset(["always", "success", "failure", "cancelled"])


@dataclass(frozen=True)
class ExpressionPolicy:
    """Which sources may be interpolated. Defaults are the strict baseline."""
    allowed_secrets: FrozenSet[str] = frozenset()
    extra_github_paths: FrozenSet[str] = frozenset()

    @property
    def github_paths(self) -> FrozenSet[str]:
        return ALLOWED_GITHUB_PATHS | self.extra_github_paths


DEFAULT_POLICY = ExpressionPolicy()


@dataclass(frozen=True)
class Placeholder:
    inner: str
    start: int
    end: int


def iter_placeholders(text: str) -> Iterator[Placeholder]:
    """
    Yield every `${{ ... }}` span in `text`, in order.

    An opener without a closing `}}` ends the scan.
    """
    pos = 0
    while True:
        start = text.find(OPEN, pos)
        if start < 0:
            return
        end = text.find(CLOSE, start + len(OPEN))
        if end < 0:
            return
        yield Placeholder(text[start + len(OPEN):end], start, end + len(CLOSE))
        pos = end + len(CLOSE)


def _suggest(path: str, policy: ExpressionPolicy) -> List[str]:
    return difflib.get_close_matches(path, sorted(policy.github_paths), n=3, cutoff=0.75)


def check_path(path: str, policy: ExpressionPolicy = DEFAULT_POLICY) -> Optional[str]:
    """Return a reason string when `path` is not authorized, else None."""
    segments = split_path(path)
    for seg in segments:
        if seg in DANGEROUS_PROPERTY_NAMES:
            return f"property '{seg}' is not allowed"

    root = segments[0]
    if root == "github":
        if path in policy.github_paths:
            return None
        if len(segments) == 4 and segments[1] == "event" and segments[2] == "inputs":
            return None
        return "github context path is not in the allow-list"

    if root in ("needs", "steps"):
        if len(segments) == 4 and segments[2] == "outputs" and "*" not in segments:
            return None
        return f"only {root}.<name>.outputs.<name> may be used"

    if root in ("inputs", "env"):
        if len(segments) == 2 and segments[1] != "*":
            return None
        return f"only {root}.<name> may be used"

    if root == "secrets":
        if len(segments) == 2 and segments[1] in policy.allowed_secrets:
            return None
        return "secret is not in the allowed subset"

    return f"context '{root}' is not allowed"


def _check_placeholder(ph: Placeholder, policy: ExpressionPolicy) -> List[ExpressionFinding]:
    inner = ph.inner
    shown = inner.strip()
    if OPEN in inner:
        return [ExpressionFinding(shown, "nested expressions are not allowed")]
    if "\n" in inner or "\r" in inner:
        return [ExpressionFinding(shown, "expressions may not span multiple lines")]
    if not shown:
        return [ExpressionFinding("${{ }}", "empty expression")]

    try:
        node = parse_expression(inner)
    except ExpressionSyntaxError as e:
        return [ExpressionFinding(shown, f"cannot parse: {e.message}")]

    findings: List[ExpressionFinding] = []
    for sub in node.walk():
        if isinstance(sub, FunctionCall) and sub.name not in STATUS_FUNCTIONS:
            findings.append(ExpressionFinding(f"{sub.name}()", "function is not allowed"))
        elif isinstance(sub, PropertyAccess):
            reason = check_path(sub.path, policy)
            if reason:
                findings.append(ExpressionFinding(sub.path, reason, _suggest(sub.path, policy)))
    return findings


def scan(text: str, policy: ExpressionPolicy = DEFAULT_POLICY) -> List[ExpressionFinding]:
    """Collect findings for every placeholder in `text`. Never raises on bad input."""
    findings: List[ExpressionFinding] = []
    count = 0
    for ph in iter_placeholders(text):
        count += 1
        findings.extend(_check_placeholder(ph, policy))
    logger.debug("scanned %d placeholder(s), %d finding(s)", count, len(findings))
    return findings


def validate_expression_safety(text: str, policy: ExpressionPolicy = DEFAULT_POLICY) -> None:
    findings = scan(text, policy)
    if findings:
        raise UnauthorizedExpressionError(findings)


def referenced_job_outputs(text: str) -> List[Tuple[str, str]]:
    """(job, output) pairs referenced as needs.<job>.outputs.<output> in `text`."""
    refs: List[Tuple[str, str]] = []
    for ph in iter_placeholders(text):
        try:
            node = parse_expression(ph.inner)
        except ExpressionSyntaxError:
            continue
        for path in node.property_paths():
            segs = split_path(path)
            if len(segs) == 4 and segs[0] == "needs" and segs[2] == "outputs":
                pair = (segs[1], segs[3])
                if pair not in refs:
                    refs.append(pair)
    return refs


def parse_allowed_secrets(raw: str | None) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(s.strip() for s in raw.split(",") if s.strip())
