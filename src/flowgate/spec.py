# spec.py
"""
Typed, immutable view of a workflow's frontmatter.

Raw YAML is validated once here; everything downstream works with
WorkflowSpec and never looks at the raw mapping again.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .capabilities import RESERVED_KEYS, CapabilityRegistry, default_registry
from .constants import BUILTIN_JOBS
from .errors import ConfigurationError
from .frontmatter import ParsedWorkflow

logger = logging.getLogger(__name__)

PRE_ACTIVATION_KEYS = ("pre-activation", "pre_activation")
PRE_ACTIVATION_FIELDS = ("steps", "outputs")
CUSTOM_JOB_FIELDS = ("needs", "if", "runs-on", "steps", "outputs", "permissions", "env", "timeout-minutes")

# keys inside `on:` that configure the gate rather than declare an event
GATE_KEYS = (
    "command",
    "slash_command",
    "reaction",
    "status-comment",
    "stop-after",
    "skip-if-match",
    "skip-if-no-match",
    "skip-roles",
)

SAFE_EVENTS = ("workflow_dispatch", "schedule")
DEFAULT_ROLES = ("admin", "maintainer", "write")
VALID_REACTIONS = ("+1", "-1", "laugh", "confused", "heart", "hooray", "rocket", "eyes", "none")
COMMAND_CONFLICTS = ("issues", "issue_comment", "pull_request", "pull_request_review_comment")
LABEL_ONLY_TYPES = {"labeled", "unlabeled"}

DEFAULT_COMMAND_EVENTS = {
    "issues": {"types": ["opened", "edited", "reopened"]},
    "issue_comment": {"types": ["created", "edited"]},
    "pull_request": {"types": ["opened", "edited", "reopened"]},
    "pull_request_review_comment": {"types": ["created", "edited"]},
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class RateLimit(_Frozen):
    max: int = 5
    window: int = 60
    events: List[str] = Field(default_factory=list)

    @field_validator("max", "window")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


class SkipQuery(_Frozen):
    query: str
    # skip-if-match reads `max`, skip-if-no-match reads `min`
    max: Optional[int] = None
    min: Optional[int] = None

    @field_validator("max", "min")
    @classmethod
    def _positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("must be a positive integer")
        return v


class CommandTrigger(_Frozen):
    names: List[str]
    events: List[str] = Field(default_factory=list)


class PreActivationFragment(_Frozen):
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    outputs: Dict[str, str] = Field(default_factory=dict)


class CustomJobSpec(_Frozen):
    name: str
    needs: List[str] = Field(default_factory=list)
    explicit_needs: bool = False
    if_: Optional[str] = Field(default=None, alias="if")
    runs_on: Optional[Union[str, List[str]]] = Field(default=None, alias="runs-on")
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    outputs: Dict[str, str] = Field(default_factory=dict)
    permissions: Optional[Union[str, Dict[str, str]]] = None
    env: Dict[str, str] = Field(default_factory=dict)
    timeout_minutes: Optional[int] = Field(default=None, alias="timeout-minutes")


class SafeOutputsSpec(_Frozen):
    capabilities: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    threat_detection: bool = False
    github_token: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return bool(self.capabilities)


class WorkflowSpec(_Frozen):
    name: str
    triggers: Dict[str, Any] = Field(default_factory=dict)
    roles: List[str] = Field(default_factory=lambda: list(DEFAULT_ROLES))
    bots: List[str] = Field(default_factory=list)
    skip_roles: List[str] = Field(default_factory=list)
    rate_limit: Optional[RateLimit] = None
    stop_after: Optional[str] = None
    skip_if_match: Optional[SkipQuery] = None
    skip_if_no_match: Optional[SkipQuery] = None
    command: Optional[CommandTrigger] = None
    reaction: Optional[str] = None
    status_comment: bool = False
    lock_for_agent: bool = False
    if_: Optional[str] = None
    permissions: Optional[Union[str, Dict[str, str]]] = None
    safe_outputs: SafeOutputsSpec = Field(default_factory=SafeOutputsSpec)
    jobs: List[CustomJobSpec] = Field(default_factory=list)
    pre_activation: Optional[PreActivationFragment] = None
    engine: str = "copilot"
    engine_config: Dict[str, Any] = Field(default_factory=dict)
    timeout_minutes: Optional[int] = None
    runs_on: Optional[Union[str, List[str]]] = None
    env: Dict[str, str] = Field(default_factory=dict)
    markdown: str = ""
    source_path: Optional[str] = None

    # ---- derived facts used by the stages ---------------------------------

    @property
    def has_workflow_run_trigger(self) -> bool:
        return "workflow_run" in self.triggers

    @property
    def needs_membership_check(self) -> bool:
        if list(self.roles) == ["all"]:
            return False
        return not self._safe_events_only()

    def _safe_events_only(self) -> bool:
        if self.command is not None:
            return False
        events = [e for e in self.triggers if e not in GATE_KEYS]
        if not events:
            return False
        if any(e not in SAFE_EVENTS for e in events):
            return False
        # workflow_dispatch is safe only when write users may run the workflow anyway
        if "workflow_dispatch" in events and "write" not in self.roles:
            return False
        return True

    @property
    def custom_jobs(self) -> Dict[str, CustomJobSpec]:
        return {j.name: j for j in self.jobs}

    def rendered_triggers(self) -> Dict[str, Any]:
        """The `on:` block of the compiled pipeline."""
        out: Dict[str, Any] = {}
        if self.command is not None:
            wanted = self.command.events or list(DEFAULT_COMMAND_EVENTS)
            for ev in wanted:
                if ev in DEFAULT_COMMAND_EVENTS:
                    out[ev] = dict(DEFAULT_COMMAND_EVENTS[ev])
        for ev, cfg in self.triggers.items():
            if ev in GATE_KEYS:
                continue
            if isinstance(cfg, dict):
                cfg = {k: v for k, v in cfg.items() if k != "lock-for-agent"} or None
            if ev in out and isinstance(cfg, dict) and "types" in cfg:
                merged = list(out[ev].get("types", []))
                merged.extend(t for t in cfg["types"] if t not in merged)
                out[ev] = {**out[ev], "types": merged}
            else:
                out[ev] = cfg
        return out

    # ---- construction ---------------------------------------------------

    @classmethod
    def from_parsed(cls, parsed: ParsedWorkflow, registry: Optional[CapabilityRegistry] = None) -> "WorkflowSpec":
        return cls.from_frontmatter(
            parsed.frontmatter,
            parsed.markdown,
            source_path=parsed.source_path,
            registry=registry,
        )

    @classmethod
    def from_frontmatter(
        cls,
        frontmatter: Mapping[str, Any],
        markdown: str = "",
        *,
        source_path: Optional[Union[str, Path]] = None,
        registry: Optional[CapabilityRegistry] = None,
    ) -> "WorkflowSpec":
        registry = registry or default_registry()
        fm = _normalize_keys(frontmatter)

        name = fm.get("name")
        if not name:
            name = Path(source_path).stem if source_path else "workflow"

        triggers = _triggers(fm.get("on"))
        command = _command(triggers, source_path)
        reaction = _reaction(triggers, command)

        data: Dict[str, Any] = {
            "name": str(name),
            "triggers": triggers,
            "roles": _string_list(fm["roles"], "roles") if "roles" in fm else list(DEFAULT_ROLES),
            "bots": _string_list(fm.get("bots"), "bots"),
            "skip_roles": _string_list(triggers.get("skip-roles"), "on.skip-roles"),
            "rate_limit": fm.get("rate-limit"),
            "stop_after": _optional_str(triggers.get("stop-after"), "on.stop-after"),
            "skip_if_match": _skip_query(triggers.get("skip-if-match"), "on.skip-if-match", "max"),
            "skip_if_no_match": _skip_query(triggers.get("skip-if-no-match"), "on.skip-if-no-match", "min"),
            "command": command,
            "reaction": reaction,
            "status_comment": _status_comment(triggers, command),
            "lock_for_agent": _lock_for_agent(triggers),
            "if_": _optional_str(fm.get("if"), "if"),
            "permissions": fm.get("permissions"),
            "safe_outputs": _safe_outputs(fm.get("safe-outputs"), registry),
            "jobs": [],
            "pre_activation": None,
            "engine": _engine_id(fm.get("engine")),
            "engine_config": fm["engine"] if isinstance(fm.get("engine"), dict) else {},
            "timeout_minutes": fm.get("timeout-minutes"),
            "runs_on": fm.get("runs-on"),
            "env": {str(k): str(v) for k, v in (fm.get("env") or {}).items()},
            "markdown": markdown,
            "source_path": str(source_path) if source_path else None,
        }

        jobs = fm.get("jobs") or {}
        if not isinstance(jobs, dict):
            raise ConfigurationError("jobs", "jobs must be a mapping of job name to job definition")
        for job_name, body in jobs.items():
            if job_name in PRE_ACTIVATION_KEYS:
                data["pre_activation"] = _pre_activation_fragment(job_name, body)
            else:
                data["jobs"].append(_custom_job(str(job_name), body))

        try:
            spec = cls.model_validate(data)
        except ValidationError as e:
            raise _configuration_error(e) from e

        logger.debug("parsed workflow %s (engine=%s, jobs=%d)", spec.name, spec.engine, len(spec.jobs))
        return spec


# ---------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------

def _normalize_keys(fm: Mapping[Any, Any]) -> Dict[str, Any]:
    # YAML 1.1 reads a bare `on:` key as boolean True
    out: Dict[str, Any] = {}
    for k, v in fm.items():
        out["on" if k is True else str(k)] = v
    return out


def _configuration_error(e: ValidationError) -> ConfigurationError:
    first = e.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return ConfigurationError(loc or "frontmatter", first.get("msg", str(e)))


def _optional_str(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ConfigurationError(field, "expected a string")
    # YAML may hand back dates and numbers for unquoted values
    return str(value)


def _string_list(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigurationError(field, "expected a string or a list of strings")


def _triggers(on: Any) -> Dict[str, Any]:
    if on is None:
        return {}
    if isinstance(on, str):
        return {on: None}
    if isinstance(on, list):
        return {str(ev): None for ev in on}
    if isinstance(on, dict):
        return dict(on)
    raise ConfigurationError("on", "expected an event name, a list or a mapping")


def _is_label_only(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    types = value.get("types")
    return isinstance(types, list) and bool(types) and set(types) <= LABEL_ONLY_TYPES


def _command(triggers: Dict[str, Any], source_path: Any) -> Optional[CommandTrigger]:
    key = "slash_command" if "slash_command" in triggers else "command" if "command" in triggers else None
    if key is None:
        return None

    for event in COMMAND_CONFLICTS:
        if event not in triggers:
            continue
        if event in ("issues", "pull_request") and _is_label_only(triggers[event]):
            continue
        raise ConfigurationError(f"on.{key}", f"cannot use '{key}' with '{event}' in the same workflow")

    raw = triggers[key]
    names: List[str] = []
    events: List[str] = []
    if isinstance(raw, str):
        names = [raw]
    elif isinstance(raw, list):
        names = _string_list(raw, f"on.{key}")
    elif isinstance(raw, dict):
        names = _string_list(raw.get("name"), f"on.{key}.name")
        events = _string_list(raw.get("events"), f"on.{key}.events")
    elif raw is not None:
        raise ConfigurationError(f"on.{key}", "expected a command name, a list or a mapping")

    if not names:
        names = [Path(source_path).stem if source_path else "workflow"]
    return CommandTrigger(names=names, events=events)


def _reaction(triggers: Dict[str, Any], command: Optional[CommandTrigger]) -> Optional[str]:
    if "reaction" in triggers:
        value = str(triggers["reaction"])
        if value not in VALID_REACTIONS:
            raise ConfigurationError(
                "on.reaction", f"invalid reaction value '{value}': must be one of {list(VALID_REACTIONS)}"
            )
        return None if value == "none" else value
    # commands acknowledge with eyes by default
    return "eyes" if command is not None else None


def _status_comment(triggers: Dict[str, Any], command: Optional[CommandTrigger]) -> bool:
    if "status-comment" in triggers:
        value = triggers["status-comment"]
        if not isinstance(value, bool):
            raise ConfigurationError("on.status-comment", "status-comment must be a boolean value")
        return value
    return command is not None


def _lock_for_agent(triggers: Dict[str, Any]) -> bool:
    for event in ("issues", "issue_comment"):
        cfg = triggers.get(event)
        if isinstance(cfg, dict) and cfg.get("lock-for-agent") is True:
            return True
    return False


def _skip_query(value: Any, field: str, bound: str) -> Optional[SkipQuery]:
    if value is None:
        return None
    if isinstance(value, str):
        return SkipQuery(query=value)
    if not isinstance(value, dict) or not isinstance(value.get("query"), str):
        raise ConfigurationError(field, f"expected a search query string or a mapping with 'query' and '{bound}'")
    unknown = sorted(str(k) for k in value if k not in ("query", bound))
    if unknown:
        raise ConfigurationError(f"{field}.{unknown[0]}", f"unsupported field (expected 'query' and '{bound}')")
    try:
        return SkipQuery.model_validate(value)
    except ValidationError as e:
        err = _configuration_error(e)
        raise ConfigurationError(f"{field}.{err.field}", err.message) from e


def _engine_id(value: Any) -> str:
    if value is None:
        return "copilot"
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str):
        return value["id"]
    raise ConfigurationError("engine", "expected an engine id or a mapping with 'id'")


def _safe_outputs(value: Any, registry: CapabilityRegistry) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError("safe-outputs", "expected a mapping of safe output name to options")

    capabilities: Dict[str, Dict[str, Any]] = {}
    for name, options in value.items():
        if name in RESERVED_KEYS:
            continue
        registry.get(name)
        if options is False:
            continue
        if options is None or options is True:
            options = {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"safe-outputs.{name}", "options must be a mapping")
        capabilities[name] = dict(options)

    detection = value.get("threat-detection", True)
    if isinstance(detection, dict):
        detection = detection.get("enabled", True)
    return {
        "capabilities": capabilities,
        "threat_detection": bool(detection) and bool(capabilities),
        "github_token": value.get("github-token"),
    }


def _pre_activation_fragment(key: str, body: Any) -> PreActivationFragment:
    field = f"jobs.{key}"
    if body is None:
        return PreActivationFragment()
    if not isinstance(body, dict):
        raise ConfigurationError(field, "expected a mapping")
    for k in body:
        if k not in PRE_ACTIVATION_FIELDS:
            raise ConfigurationError(
                field, f"unsupported field '{k}' - only 'steps' and 'outputs' are allowed"
            )
    steps = body.get("steps") or []
    if not isinstance(steps, list) or not all(isinstance(s, dict) for s in steps):
        raise ConfigurationError(f"{field}.steps", "expected a list of step mappings")
    outputs = body.get("outputs") or {}
    if not isinstance(outputs, dict):
        raise ConfigurationError(f"{field}.outputs", "expected a mapping")
    return PreActivationFragment(steps=steps, outputs={str(k): str(v) for k, v in outputs.items()})


def _custom_job(name: str, body: Any) -> CustomJobSpec:
    field = f"jobs.{name}"
    if name in BUILTIN_JOBS:
        raise ConfigurationError(field, f"'{name}' is a reserved job name")
    if not isinstance(body, dict):
        raise ConfigurationError(field, "expected a mapping")
    for k in body:
        if k not in CUSTOM_JOB_FIELDS:
            raise ConfigurationError(
                field,
                f"unsupported field '{k}' - allowed fields are {', '.join(CUSTOM_JOB_FIELDS)}",
            )
    data = dict(body)
    data["name"] = name
    data["explicit_needs"] = "needs" in body
    data["needs"] = _string_list(body.get("needs"), f"{field}.needs")
    if "outputs" in data:
        outputs = data["outputs"] or {}
        if not isinstance(outputs, dict):
            raise ConfigurationError(f"{field}.outputs", "expected a mapping")
        data["outputs"] = {str(k): str(v) for k, v in outputs.items()}
    if "env" in data:
        data["env"] = {str(k): str(v) for k, v in (data["env"] or {}).items()}
    try:
        return CustomJobSpec.model_validate(data)
    except ValidationError as e:
        err = _configuration_error(e)
        raise ConfigurationError(f"{field}.{err.field}", err.message) from e
