# dsl.py
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from .errors import DeveloperError
from .expr.nodes import ExpressionNode
from .model import Job, RawStep, Step
from .permissions import PermissionLevel, PermissionScope, PermissionSet


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, id: str | None = None, if_: ExpressionNode | None = None,
       env: Optional[Dict[str, str]] = None) -> Step:
    """Create a shell step."""
    return Step(name=name, id=id, if_=if_, run=cmd, env=env or {})


def uses(name: str, action: str, *, id: str | None = None, if_: ExpressionNode | None = None,
         with_: Optional[Dict[str, Any]] = None, env: Optional[Dict[str, str]] = None) -> Step:
    """Create a step that runs an action."""
    return Step(name=name, id=id, if_=if_, uses=action, with_=with_ or {}, env=env or {})


def script(name: str, action: str, body: str, *, id: str | None = None,
           if_: ExpressionNode | None = None, env: Optional[Dict[str, str]] = None) -> Step:
    """A github-script step whose `script` input is `body`."""
    return uses(name, action, id=id, if_=if_, with_={"script": body}, env=env)


def raw(body: Dict[str, Any]) -> RawStep:
    return RawStep(dict(body))


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Any] = []
        self._guard: Optional[ExpressionNode] = None
        self._permissions = PermissionSet()
        self._outputs: dict[str, str] = {}
        self._env: dict[str, str] = {}
        self._runs_on: Union[str, list[str], None] = None
        self._timeout: Optional[int] = None

    def depends_on(self, *job_names: str):
        for n in job_names:
            if n not in self._needs:
                self._needs.append(n)
        return self

    def guarded_by(self, guard: Optional[ExpressionNode]):
        self._guard = guard
        return self

    def add_step(self, step: Any):
        self._steps.append(step)
        return self

    def add_steps(self, *steps: Any):
        self._steps.extend(steps)
        return self

    def define_step(self, name: str, run: str, *, id: str | None = None):
        return self.add_step(sh(name, run, id=id))

    def grant(self, scope: PermissionScope | str, level: PermissionLevel | str = PermissionLevel.READ):
        self._permissions.accumulate(scope, level)
        return self

    def grant_all(self, permissions: PermissionSet):
        self._permissions.merge(permissions)
        return self

    def output(self, name: str, value: str | ExpressionNode):
        self._outputs[name] = value.render() if isinstance(value, ExpressionNode) else value
        return self

    def with_outputs(self, outputs: Dict[str, Any]):
        for k, v in outputs.items():
            self.output(k, v if isinstance(v, ExpressionNode) else str(v))
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def runs_on(self, runner: Union[str, list[str]]):
        self._runs_on = runner
        return self

    def timeout(self, minutes: Optional[int]):
        self._timeout = minutes
        return self

    @property
    def permissions(self) -> PermissionSet:
        return self._permissions

    @property
    def steps(self) -> list[Any]:
        return list(self._steps)

    def build(self) -> Job:
        if not self._steps:
            raise DeveloperError(f"job '{self.name}' has no steps")

        return Job(
            name=self.name,
            steps=list(self._steps),
            needs=list(self._needs),
            guard=self._guard,
            permissions=self._permissions.freeze(),
            outputs=dict(self._outputs),
            runs_on=self._runs_on,
            env=dict(self._env),
            timeout_minutes=self._timeout,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('agent').add_step(...).build()"""
    return JobBuilder(name)
