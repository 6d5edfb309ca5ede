# stages/conclusion.py
"""Trailer job: runs after everything else, whatever their outcome."""
from __future__ import annotations

from typing import List

from ..constants import ACTIVATION, AGENT, CONCLUSION, DETECTION, SAFE_OUTPUTS
from ..dsl import JobBuilder
from ..expr.builder import agent_not_skipped, always, and_, job_output, property_access, step_output
from ..model import Job
from ..permissions import PermissionLevel, PermissionScope
from .context import LATE, BuildContext, handler_step, setup_step
from .pre_activation import grant_reaction
from .safe_outputs import enabled_capabilities


def conclusion_needs(ctx: BuildContext) -> List[str]:
    needs = [AGENT]
    for name in (ACTIVATION, SAFE_OUTPUTS, DETECTION):
        if name in ctx.graph:
            needs.append(name)
    needs.extend(ctx.custom_jobs_in(LATE))
    return needs


def build_conclusion(ctx: BuildContext) -> Job:
    spec, opts = ctx.spec, ctx.options

    jb = (
        JobBuilder(CONCLUSION)
        .runs_on(opts.runs_on)
        .depends_on(*conclusion_needs(ctx))
        .guarded_by(and_(always(), agent_not_skipped(AGENT)))
        .grant(PermissionScope.CONTENTS, PermissionLevel.READ)
        .add_step(setup_step(opts))
    )

    caps = enabled_capabilities(ctx) if SAFE_OUTPUTS in ctx.graph else []
    for cap in caps:
        if cap.url_output:
            key = f"{cap.key}_{cap.url_output}"
            jb.output(key, job_output(SAFE_OUTPUTS, key))

    if "noop" in spec.safe_outputs.capabilities:
        jb.add_step(
            handler_step(
                opts,
                "Process no-op messages",
                "noop",
                id="noop",
                env={"FLOWGATE_AGENT_OUTPUT": job_output(AGENT, "output").render()},
            )
        )
        jb.output("noop_message", step_output("noop", "noop_message"))

    env = {
        "FLOWGATE_WORKFLOW_NAME": spec.name,
        "FLOWGATE_AGENT_CONCLUSION": property_access(f"needs.{AGENT}.result").render(),
    }
    if spec.status_comment:
        grant_reaction(jb)
        env["FLOWGATE_COMMENT_ID"] = job_output(ACTIVATION, "comment_id").render()
        env["FLOWGATE_COMMENT_REPO"] = job_output(ACTIVATION, "comment_repo").render()
    jb.add_step(handler_step(opts, "Report workflow outcome", "conclusion", id="conclusion", env=env))

    if spec.lock_for_agent:
        jb.grant(PermissionScope.ISSUES, PermissionLevel.WRITE)
        jb.add_step(
            handler_step(
                opts,
                "Unlock issue after agent workflow",
                "unlock_issue",
                id="unlock_issue",
                env={"FLOWGATE_ISSUE_LOCKED": job_output(ACTIVATION, "issue_locked").render()},
            )
        )

    return jb.build()
