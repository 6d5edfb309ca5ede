# capabilities.py
"""
Safe-output capability registry.

A capability is one kind of side effect the agent may request (open an
issue, add a comment, push a branch). The agent job never holds write
access; the consolidated safe_outputs job does, with exactly the union of
what the enabled capabilities need.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .permissions import PermissionLevel, PermissionScope, PermissionSet

R = PermissionLevel.READ
W = PermissionLevel.WRITE

CONTENTS = PermissionScope.CONTENTS
ISSUES = PermissionScope.ISSUES
PULL_REQUESTS = PermissionScope.PULL_REQUESTS
DISCUSSIONS = PermissionScope.DISCUSSIONS

# keys under `safe-outputs:` that configure the job rather than enable a capability
RESERVED_KEYS = ("threat-detection", "github-token", "staged", "env", "runs-on")


def _fixed(grants: Mapping[PermissionScope, PermissionLevel]) -> Callable[[Mapping[str, Any]], PermissionSet]:
    def requirement(_options: Mapping[str, Any]) -> PermissionSet:
        return PermissionSet(grants)
    return requirement


def _create_pull_request(options: Mapping[str, Any]) -> PermissionSet:
    ps = PermissionSet({CONTENTS: W, PULL_REQUESTS: W})
    # falls back to opening an issue unless disabled
    if options.get("fallback-as-issue", True) is not False:
        ps.accumulate(ISSUES, W)
    return ps


@dataclass(frozen=True)
class Capability:
    name: str
    requirement: Callable[[Mapping[str, Any]], PermissionSet]
    handler: str
    url_output: Optional[str] = None
    needs_activation: bool = False

    @property
    def key(self) -> str:
        """Identifier form used in step ids and output names."""
        return self.name.replace("-", "_")

    def permissions(self, options: Optional[Mapping[str, Any]] = None) -> PermissionSet:
        return self.requirement(options or {})


class CapabilityRegistry:
    def __init__(self, capabilities: Optional[List[Capability]] = None):
        self._caps: Dict[str, Capability] = {}
        for cap in capabilities or []:
            self.register(cap)

    def register(self, cap: Capability) -> None:
        self._caps[cap.name] = cap

    def get(self, name: str) -> Capability:
        try:
            return self._caps[name]
        except KeyError:
            raise ConfigurationError(
                f"safe-outputs.{name}",
                f"unknown safe output '{name}'. Known: {', '.join(sorted(self._caps))}",
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._caps

    def names(self) -> List[str]:
        return sorted(self._caps)


DEFAULT_CAPABILITIES = [
    Capability("create-issue", _fixed({CONTENTS: R, ISSUES: W}), "create_issue", "issue_url"),
    Capability(
        "create-discussion",
        _fixed({CONTENTS: R, ISSUES: W, DISCUSSIONS: W}),
        "create_discussion",
        "discussion_url",
    ),
    Capability("close-discussion", _fixed({CONTENTS: R, DISCUSSIONS: W}), "close_discussion", "discussion_url"),
    Capability("update-discussion", _fixed({CONTENTS: R, DISCUSSIONS: W}), "update_discussion"),
    Capability(
        "add-comment",
        _fixed({CONTENTS: R, ISSUES: W, PULL_REQUESTS: W, DISCUSSIONS: W}),
        "add_comment",
        "comment_url",
    ),
    Capability(
        "hide-comment",
        _fixed({CONTENTS: R, ISSUES: W, PULL_REQUESTS: W, DISCUSSIONS: W}),
        "hide_comment",
    ),
    Capability("add-labels", _fixed({CONTENTS: R, ISSUES: W, PULL_REQUESTS: W}), "add_labels"),
    Capability("remove-labels", _fixed({CONTENTS: R, ISSUES: W, PULL_REQUESTS: W}), "remove_labels"),
    Capability("close-issue", _fixed({CONTENTS: R, ISSUES: W}), "close_issue", "issue_url"),
    Capability("update-issue", _fixed({CONTENTS: R, ISSUES: W}), "update_issue"),
    Capability("close-pull-request", _fixed({CONTENTS: R, PULL_REQUESTS: W}), "close_pull_request", "pull_request_url"),
    Capability(
        "create-pull-request",
        _create_pull_request,
        "create_pull_request",
        "pull_request_url",
        needs_activation=True,
    ),
    Capability(
        "push-to-pull-request-branch",
        _fixed({CONTENTS: W, PULL_REQUESTS: W}),
        "push_to_pull_request_branch",
        "commit_url",
        needs_activation=True,
    ),
    Capability("upload-asset", _fixed({CONTENTS: W}), "upload_assets"),
    Capability(
        "create-code-scanning-alert",
        _fixed({CONTENTS: R, PermissionScope.SECURITY_EVENTS: W}),
        "create_code_scanning_alert",
    ),
    Capability("dispatch-workflow", _fixed({PermissionScope.ACTIONS: W}), "dispatch_workflow"),
    Capability("missing-tool", _fixed({CONTENTS: R}), "missing_tool"),
    Capability("noop", _fixed({CONTENTS: R}), "noop"),
]


def default_registry() -> CapabilityRegistry:
    return CapabilityRegistry(list(DEFAULT_CAPABILITIES))
