# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .expr.nodes import ExpressionNode
from .permissions import PermissionSet


@dataclass(frozen=True)
class Step:
    """
    A single step inside a pipeline job.

    Steps are opaque to the graph builder: it only orders them and, for
    steps with an `id`, references their outputs.
    """
    name: str
    id: Optional[str] = None
    if_: Optional[ExpressionNode] = None
    uses: Optional[str] = None
    run: Optional[str] = None
    with_: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name}
        if self.id:
            d["id"] = self.id
        if self.if_ is not None:
            d["if"] = self.if_.render()
        if self.uses:
            d["uses"] = self.uses
        if self.env:
            d["env"] = dict(self.env)
        if self.with_:
            d["with"] = dict(self.with_)
        if self.run is not None:
            d["run"] = self.run
        return d


@dataclass(frozen=True)
class RawStep:
    """A step passed through verbatim from a user's custom job fragment."""
    body: Dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.body.get("name") or self.body.get("id") or "step")

    @property
    def id(self) -> Optional[str]:
        return self.body.get("id")

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.body)


@dataclass
class Job:
    """
    A pipeline job: ordered steps, dependency edges, guard and grants.

    `needs` lists jobs that must run BEFORE this one. `guard` is None for an
    unconditional job. `permissions` is frozen once the job is built.
    """
    name: str
    steps: List[Any]
    needs: List[str] = field(default_factory=list)
    guard: Optional[ExpressionNode] = None
    permissions: PermissionSet = field(default_factory=lambda: PermissionSet().freeze())
    outputs: Dict[str, str] = field(default_factory=dict)
    runs_on: Optional[Union[str, List[str]]] = None
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[int] = None

    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps if getattr(s, "id", None)]

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.needs:
            d["needs"] = self.needs[0] if len(self.needs) == 1 else list(self.needs)
        if self.guard is not None:
            d["if"] = self.guard.render()
        if self.runs_on:
            d["runs-on"] = self.runs_on
        if not self.permissions.is_empty():
            d["permissions"] = self.permissions.to_dict()
        if self.timeout_minutes is not None:
            d["timeout-minutes"] = self.timeout_minutes
        if self.env:
            d["env"] = dict(self.env)
        if self.outputs:
            d["outputs"] = dict(self.outputs)
        d["steps"] = [s.to_dict() for s in self.steps]
        return d
