# stages/agent.py
from __future__ import annotations

import logging
from typing import List

from ..constants import ACTIVATION, AGENT, COLLECT_OUTPUT_STEP, PRE_ACTIVATION
from ..dsl import JobBuilder, sh, uses
from ..engine import OUTPUT_PATH, PROMPT_PATH
from ..errors import ConfigurationError
from ..expr.builder import step_output
from ..expr.safety import referenced_job_outputs
from ..model import Job, Step
from ..permissions import PermissionLevel, PermissionScope, PermissionSet
from .context import LATE, BuildContext, handler_step, setup_step

logger = logging.getLogger(__name__)

PROMPT_DELIMITER = "FLOWGATE_PROMPT_EOF"
OUTPUT_ARTIFACT = "agent_output"


def agent_needs(ctx: BuildContext) -> List[str]:
    needs: List[str] = []
    if ACTIVATION in ctx.graph:
        needs.append(ACTIVATION)

    jobs = ctx.spec.custom_jobs
    for name, group in ctx.custom_groups.items():
        if group == LATE or PRE_ACTIVATION in jobs[name].needs:
            continue
        needs.append(name)

    # jobs whose outputs the prompt or the guard reads get a direct edge
    referenced = [job for job, _ in referenced_job_outputs(ctx.spec.markdown)]
    if ctx.condition is not None and not ctx.condition_on_activation:
        referenced.extend(ctx.condition_job_refs)
    for job in referenced:
        if job in jobs and job not in needs:
            needs.append(job)
    return needs


def prompt_step(markdown: str) -> Step:
    if any(line.strip() == PROMPT_DELIMITER for line in markdown.splitlines()):
        raise ConfigurationError("markdown", f"prompt may not contain a '{PROMPT_DELIMITER}' line")
    body = markdown if markdown.endswith("\n") else markdown + "\n"
    cmd = (
        f"mkdir -p \"$(dirname {PROMPT_PATH})\"\n"
        f"cat > {PROMPT_PATH} << '{PROMPT_DELIMITER}'\n"
        f"{body}"
        f"{PROMPT_DELIMITER}\n"
    )
    return sh("Create prompt", cmd)


def build_agent(ctx: BuildContext) -> Job:
    spec, opts = ctx.spec, ctx.options

    perms = PermissionSet.parse(spec.permissions)
    perms.accumulate(PermissionScope.CONTENTS, PermissionLevel.READ)

    jb = (
        JobBuilder(AGENT)
        .runs_on(spec.runs_on or opts.runs_on)
        .depends_on(*agent_needs(ctx))
        .grant_all(perms)
        .timeout(spec.timeout_minutes or opts.agent_timeout_minutes)
        .add_step(uses("Checkout repository", opts.checkout_action, with_={"persist-credentials": False}))
        .add_step(setup_step(opts))
        .add_step(prompt_step(spec.markdown))
    )
    if spec.env:
        jb.with_env(**spec.env)

    jb.add_steps(*ctx.engine.steps(spec.engine_config))
    jb.with_outputs(ctx.engine.declared_outputs())

    if spec.safe_outputs.enabled:
        jb.add_step(
            handler_step(
                opts,
                "Collect agent output",
                "collect_ndjson_output",
                id=COLLECT_OUTPUT_STEP,
                env={
                    "FLOWGATE_SAFE_OUTPUTS": OUTPUT_PATH,
                    "FLOWGATE_ALLOWED_OUTPUTS": ",".join(sorted(spec.safe_outputs.capabilities)),
                },
            )
        )
        jb.add_step(
            uses(
                "Upload agent output",
                "actions/upload-artifact@v4",
                with_={"name": OUTPUT_ARTIFACT, "path": OUTPUT_PATH, "if-no-files-found": "ignore"},
            )
        )
        for name in ("output", "output_types", "has_patch"):
            jb.output(name, step_output(COLLECT_OUTPUT_STEP, name))

    if ctx.condition is not None and not ctx.condition_on_activation:
        jb.guarded_by(ctx.condition)

    job = jb.build()
    logger.debug("agent needs: %s", job.needs)
    return job
