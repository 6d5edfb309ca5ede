# stages/detection.py
"""Threat detection over the agent's output before any side effect runs."""
from __future__ import annotations

from ..constants import AGENT, DETECTION, DETECTION_STEP
from ..dsl import JobBuilder, uses
from ..expr.builder import equals, job_output, not_equals, or_, step_output
from ..model import Job
from ..permissions import PermissionLevel, PermissionScope
from .agent import OUTPUT_ARTIFACT
from .context import BuildContext, handler_step, setup_step


def detection_guard():
    return or_(
        not_equals(job_output(AGENT, "output_types"), ""),
        equals(job_output(AGENT, "has_patch"), "true"),
    )


def build_detection(ctx: BuildContext) -> Job:
    opts = ctx.options
    return (
        JobBuilder(DETECTION)
        .runs_on(opts.runs_on)
        .depends_on(AGENT)
        .guarded_by(detection_guard())
        .grant(PermissionScope.CONTENTS, PermissionLevel.READ)
        .timeout(10)
        .add_step(setup_step(opts))
        .add_step(uses("Download agent output", "actions/download-artifact@v4", with_={"name": OUTPUT_ARTIFACT}))
        .add_step(
            handler_step(
                opts,
                "Scan agent output for threats",
                "detect_threats",
                id=DETECTION_STEP,
                env={"FLOWGATE_AGENT_OUTPUT": job_output(AGENT, "output").render()},
            )
        )
        .output("success", step_output(DETECTION_STEP, "success"))
        .build()
    )
