# stages/custom_jobs.py
"""
User-defined jobs from the `jobs:` frontmatter block.

Each job is placed in one of three groups so that everything it needs has
already been added when it is:

    early   before activation (needs pre_activation or nothing built-in)
    middle  after activation, before agent
    late    after safe_outputs (needs agent, detection or safe_outputs)
"""
from __future__ import annotations

import logging
from typing import Dict, List, Union

from ..constants import ACTIVATION, AGENT, DETECTION, SAFE_OUTPUTS
from ..dsl import JobBuilder, raw
from ..errors import ConfigurationError
from ..expr.builder import parse_condition
from ..expr.safety import validate_expression_safety
from ..model import Job
from ..permissions import PermissionSet
from ..spec import CustomJobSpec, WorkflowSpec
from .context import EARLY, LATE, MIDDLE, BuildContext

logger = logging.getLogger(__name__)

_LATE_NEEDS = {AGENT, DETECTION, SAFE_OUTPUTS}


def effective_needs(job: CustomJobSpec) -> List[str]:
    # jobs without explicit needs wait for activation
    if not job.explicit_needs:
        return [ACTIVATION]
    return list(job.needs)


def _ordered(jobs: Dict[str, CustomJobSpec]) -> List[str]:
    """Declared order, with custom-job dependencies moved in front."""
    order: List[str] = []
    state: Dict[str, int] = {}  # 1 = visiting, 2 = done

    def visit(name: str, path: List[str]) -> None:
        if state.get(name) == 2:
            return
        if state.get(name) == 1:
            cycle = path[path.index(name):]
            raise ConfigurationError("jobs", "custom jobs depend on each other in a cycle: " + " -> ".join(cycle))
        state[name] = 1
        for need in jobs[name].needs:
            if need in jobs:
                visit(need, path + [need])
        state[name] = 2
        order.append(name)

    for name in jobs:
        visit(name, [name])
    return order


def classify_custom_jobs(spec: WorkflowSpec) -> Dict[str, str]:
    """Custom job name -> group, in build order."""
    jobs = spec.custom_jobs
    groups: Dict[str, str] = {}
    for name in _ordered(jobs):
        needs = effective_needs(jobs[name])
        custom = [groups[n] for n in needs if n in groups]
        if _LATE_NEEDS.intersection(needs) or LATE in custom:
            groups[name] = LATE
        elif ACTIVATION in needs or MIDDLE in custom:
            groups[name] = MIDDLE
        else:
            groups[name] = EARLY
    logger.debug("custom job groups: %s", groups)
    return groups


def build_custom_job(ctx: BuildContext, name: str) -> Job:
    spec = ctx.spec.custom_jobs[name]
    field = f"jobs.{name}"
    if not spec.steps:
        raise ConfigurationError(field, "custom jobs must define steps")

    for need in effective_needs(spec):
        if need not in ctx.graph:
            raise ConfigurationError(f"{field}.needs", f"job '{name}' needs '{need}', which is not part of this workflow")

    jb = JobBuilder(name).runs_on(_runs_on(spec.runs_on, ctx.options.runs_on))
    jb.depends_on(*effective_needs(spec))
    jb.add_steps(*(raw(s) for s in spec.steps))

    if spec.if_:
        jb.guarded_by(parse_condition(spec.if_, field=f"{field}.if"))
    if spec.permissions is not None:
        jb.grant_all(PermissionSet.parse(spec.permissions, allow_write=True, field=f"{field}.permissions"))
    for out_name, value in spec.outputs.items():
        validate_expression_safety(value, ctx.policy)
        jb.output(out_name, value)
    if spec.env:
        jb.with_env(**spec.env)
    jb.timeout(spec.timeout_minutes)
    return jb.build()


def _runs_on(value: Union[str, List[str], None], default: str) -> Union[str, List[str]]:
    return default if value is None else value
