# stages/activation.py
from __future__ import annotations

import logging
from typing import List

from ..constants import (
    ACTIVATION,
    COMPUTE_TEXT_STEP,
    LOCK_STEP,
    MATCHED_COMMAND,
    PRE_ACTIVATION,
    STALENESS_STEP,
    STATUS_COMMENT_STEP,
)
from ..dsl import JobBuilder
from ..expr.builder import (
    activated_check,
    and_,
    event_type_equals,
    job_output,
    or_,
    step_output,
    workflow_run_repo_safety,
)
from ..expr.nodes import ExpressionNode
from ..expr.safety import referenced_job_outputs
from ..model import Job
from ..permissions import PermissionLevel, PermissionScope
from .context import BuildContext, handler_step, setup_step
from .pre_activation import grant_reaction, reaction_step

logger = logging.getLogger(__name__)

TEXT_OUTPUTS = ("text", "title", "body")


def uses_computed_text(markdown: str) -> bool:
    return any(job == ACTIVATION and out in TEXT_OUTPUTS for job, out in referenced_job_outputs(markdown))


def activation_guard(ctx: BuildContext) -> ExpressionNode | None:
    parts: List[ExpressionNode] = []
    if ctx.pre_activation_built:
        parts.append(activated_check(PRE_ACTIVATION))

    if ctx.condition_on_activation:
        parts.append(ctx.condition)

    if ctx.spec.has_workflow_run_trigger:
        parts.append(workflow_run_repo_safety())

    return and_(*parts) if parts else None


def build_activation(ctx: BuildContext) -> Job:
    spec, opts = ctx.spec, ctx.options

    jb = (
        JobBuilder(ACTIVATION)
        .runs_on(opts.runs_on)
        .grant(PermissionScope.CONTENTS, PermissionLevel.READ)
        .add_step(setup_step(opts))
    )

    if ctx.pre_activation_built:
        jb.depends_on(PRE_ACTIVATION)
        jb.depends_on(*ctx.custom_jobs_needing(PRE_ACTIVATION))
    if ctx.condition_on_activation:
        # the condition reads outputs of these jobs
        jb.depends_on(*ctx.condition_job_refs)

    jb.guarded_by(activation_guard(ctx))

    jb.add_step(
        handler_step(
            opts,
            "Check workflow file timestamps",
            "check_workflow_timestamp",
            id=STALENESS_STEP,
            env={
                "FLOWGATE_WORKFLOW_FILE": spec.source_path or spec.name,
                "FLOWGATE_SOURCE_HASH": ctx.source_hash,
            },
        )
    )

    if spec.reaction:
        grant_reaction(jb)
        if not ctx.pre_activation_built:
            jb.add_step(reaction_step(ctx))

    if uses_computed_text(spec.markdown):
        jb.add_step(handler_step(opts, "Compute current body text", "compute_text", id=COMPUTE_TEXT_STEP))
        for name in TEXT_OUTPUTS:
            jb.output(name, step_output(COMPUTE_TEXT_STEP, name))

    if spec.status_comment:
        grant_reaction(jb)
        jb.add_step(
            handler_step(
                opts,
                "Add status comment",
                "add_workflow_run_comment",
                id=STATUS_COMMENT_STEP,
                env={"FLOWGATE_WORKFLOW_NAME": spec.name},
            )
        )
        jb.output("comment_id", step_output(STATUS_COMMENT_STEP, "comment_id"))
        jb.output("comment_repo", step_output(STATUS_COMMENT_STEP, "comment_repo"))
    else:
        jb.output("comment_id", "")
        jb.output("comment_repo", "")

    if spec.command is not None and ctx.pre_activation_built:
        jb.output("slash_command", job_output(PRE_ACTIVATION, MATCHED_COMMAND))

    if spec.lock_for_agent:
        jb.grant(PermissionScope.ISSUES, PermissionLevel.WRITE)
        jb.add_step(
            handler_step(
                opts,
                "Lock issue for agent workflow",
                "lock_issue",
                id=LOCK_STEP,
                if_=or_(event_type_equals("issues"), event_type_equals("issue_comment")),
            )
        )
        jb.output("issue_locked", step_output(LOCK_STEP, "locked"))

    job = jb.build()
    logger.debug("activation guard: %s", job.guard.source() if job.guard else None)
    return job
