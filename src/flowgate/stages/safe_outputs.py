# stages/safe_outputs.py
"""
The consolidated side-effect job.

One job applies every enabled capability. Its grant is the merge of what
those capabilities need and nothing more.
"""
from __future__ import annotations

import json
import logging
from typing import Dict, List

from ..capabilities import Capability
from ..constants import ACTIVATION, AGENT, DETECTION, SAFE_OUTPUTS
from ..dsl import JobBuilder, uses
from ..expr.builder import agent_not_skipped, and_, detection_succeeded, job_output, not_cancelled, step_output
from ..expr.nodes import ExpressionNode
from ..expr.safety import validate_expression_safety
from ..model import Job
from ..permissions import merged
from .agent import OUTPUT_ARTIFACT
from .context import BuildContext, handler_step, setup_step

logger = logging.getLogger(__name__)


def enabled_capabilities(ctx: BuildContext) -> List[Capability]:
    return [ctx.registry.get(name) for name in sorted(ctx.spec.safe_outputs.capabilities)]


def safe_outputs_guard(with_detection: bool) -> ExpressionNode:
    parts = [not_cancelled(), agent_not_skipped(AGENT)]
    if with_detection:
        parts.append(detection_succeeded(DETECTION))
    return and_(*parts)


def build_safe_outputs(ctx: BuildContext) -> Job:
    spec, opts = ctx.spec, ctx.options
    caps = enabled_capabilities(ctx)
    options: Dict[str, dict] = spec.safe_outputs.capabilities
    with_detection = DETECTION in ctx.graph

    jb = (
        JobBuilder(SAFE_OUTPUTS)
        .runs_on(opts.runs_on)
        .depends_on(AGENT)
        .guarded_by(safe_outputs_guard(with_detection))
        .timeout(opts.safe_outputs_timeout_minutes)
        .grant_all(merged(*(cap.permissions(options[cap.name]) for cap in caps)))
        .add_step(setup_step(opts))
        .add_step(uses("Download agent output", "actions/download-artifact@v4", with_={"name": OUTPUT_ARTIFACT}))
    )
    if with_detection:
        jb.depends_on(DETECTION)
    if any(cap.needs_activation for cap in caps) or spec.lock_for_agent:
        jb.depends_on(ACTIVATION)

    env = {"FLOWGATE_AGENT_OUTPUT": job_output(AGENT, "output").render()}
    if spec.safe_outputs.github_token:
        validate_expression_safety(spec.safe_outputs.github_token, ctx.policy)
        env["GITHUB_TOKEN"] = spec.safe_outputs.github_token

    for cap in caps:
        step_env = dict(env)
        if options[cap.name]:
            step_env["FLOWGATE_HANDLER_CONFIG"] = json.dumps(options[cap.name], sort_keys=True, default=str)
        jb.add_step(handler_step(opts, f"Process {cap.name}", cap.handler, id=cap.key, env=step_env))
        if cap.url_output:
            jb.output(f"{cap.key}_{cap.url_output}", step_output(cap.key, cap.url_output))

    job = jb.build()
    logger.debug("safe_outputs capabilities: %s", [c.name for c in caps])
    return job
