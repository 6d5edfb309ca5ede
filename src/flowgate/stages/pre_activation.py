# stages/pre_activation.py
"""
The gate job.

Runs every configured activation check and folds their boolean step
outputs into a single `activated` output that activation is guarded on.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, List

from ..constants import (
    ACTIVATED,
    CHECK_COMMAND_POSITION,
    CHECK_MEMBERSHIP,
    CHECK_RATE_LIMIT,
    CHECK_SKIP_IF_MATCH,
    CHECK_SKIP_IF_NO_MATCH,
    CHECK_SKIP_ROLES,
    CHECK_STOP_TIME,
    COMMAND_POSITION_OK,
    IS_TEAM_MEMBER,
    MATCHED_COMMAND,
    PRE_ACTIVATION,
    RATE_LIMIT_OK,
    REACTION_STEP,
    SKIP_CHECK_OK,
    SKIP_NO_MATCH_CHECK_OK,
    SKIP_ROLES_OK,
    STOP_TIME_OK,
)
from ..dsl import JobBuilder, raw
from ..errors import DeveloperError
from ..expr.builder import and_, step_output, step_output_is_true
from ..expr.safety import validate_expression_safety
from ..model import Job, Step
from ..permissions import PermissionLevel, PermissionScope
from .context import BuildContext, handler_step, setup_step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Check:
    step_id: str
    output: str
    step: Step


# order the checks are AND-folded into `activated`; steps run in configuration order
FOLD_ORDER = (
    CHECK_MEMBERSHIP,
    CHECK_STOP_TIME,
    CHECK_SKIP_IF_MATCH,
    CHECK_SKIP_IF_NO_MATCH,
    CHECK_RATE_LIMIT,
    CHECK_SKIP_ROLES,
    CHECK_COMMAND_POSITION,
)


def configured_checks(ctx: BuildContext) -> List[Check]:
    """Checks in the order their steps run."""
    spec, opts = ctx.spec, ctx.options
    checks: List[Check] = []

    def add(step_id: str, output: str, handler: str, title: str, env: Dict[str, str]) -> None:
        checks.append(Check(step_id, output, handler_step(opts, title, handler, id=step_id, env=env)))

    if spec.needs_membership_check:
        env = {"FLOWGATE_REQUIRED_ROLES": ",".join(spec.roles)}
        if spec.bots:
            env["FLOWGATE_ALLOWED_BOTS"] = ",".join(spec.bots)
        add(CHECK_MEMBERSHIP, IS_TEAM_MEMBER, "check_membership", "Check team membership", env)

    if spec.rate_limit is not None:
        env = {
            "FLOWGATE_RATE_LIMIT_MAX": str(spec.rate_limit.max),
            "FLOWGATE_RATE_LIMIT_WINDOW": str(spec.rate_limit.window),
        }
        if spec.rate_limit.events:
            env["FLOWGATE_RATE_LIMIT_EVENTS"] = ",".join(spec.rate_limit.events)
        add(CHECK_RATE_LIMIT, RATE_LIMIT_OK, "check_rate_limit", "Check user rate limit", env)

    if spec.stop_after is not None:
        env = {"FLOWGATE_STOP_TIME": spec.stop_after, "FLOWGATE_WORKFLOW_NAME": spec.name}
        add(CHECK_STOP_TIME, STOP_TIME_OK, "check_stop_time", "Check stop-time limit", env)

    if spec.skip_if_match is not None:
        env = {
            "FLOWGATE_SKIP_QUERY": spec.skip_if_match.query,
            "FLOWGATE_SKIP_MAX_MATCHES": str(spec.skip_if_match.max or 1),
        }
        add(CHECK_SKIP_IF_MATCH, SKIP_CHECK_OK, "check_skip_if_match", "Check skip-if-match query", env)

    if spec.skip_if_no_match is not None:
        env = {
            "FLOWGATE_SKIP_QUERY": spec.skip_if_no_match.query,
            "FLOWGATE_SKIP_MIN_MATCHES": str(spec.skip_if_no_match.min or 1),
        }
        add(
            CHECK_SKIP_IF_NO_MATCH,
            SKIP_NO_MATCH_CHECK_OK,
            "check_skip_if_no_match",
            "Check skip-if-no-match query",
            env,
        )

    if spec.skip_roles:
        env = {"FLOWGATE_SKIP_ROLES": ",".join(spec.skip_roles)}
        add(CHECK_SKIP_ROLES, SKIP_ROLES_OK, "check_skip_roles", "Check skip-roles", env)

    if spec.command is not None:
        env = {"FLOWGATE_COMMANDS": json.dumps(spec.command.names)}
        add(CHECK_COMMAND_POSITION, COMMAND_POSITION_OK, "check_command_position", "Check command position", env)

    return checks


def fold_order(checks: List[Check]) -> List[Check]:
    return sorted(checks, key=lambda c: FOLD_ORDER.index(c.step_id))


def build_pre_activation(ctx: BuildContext) -> Job:
    spec = ctx.spec
    checks = configured_checks(ctx)
    if not checks:
        raise DeveloperError("pre_activation requested with no activation checks configured")
    logger.debug("pre_activation checks: %s", [c.step_id for c in checks])

    jb = (
        JobBuilder(PRE_ACTIVATION)
        .runs_on(ctx.options.runs_on)
        .grant(PermissionScope.CONTENTS, PermissionLevel.READ)
        .add_step(setup_step(ctx.options))
    )

    if spec.reaction:
        jb.add_step(reaction_step(ctx))
        grant_reaction(jb)

    if spec.rate_limit is not None:
        jb.grant(PermissionScope.ACTIONS, PermissionLevel.READ)

    for check in checks:
        jb.add_step(check.step)

    fragment = spec.pre_activation
    if fragment is not None:
        jb.add_steps(*(raw(s) for s in fragment.steps))

    jb.output(ACTIVATED, and_(*(step_output_is_true(c.step_id, c.output) for c in fold_order(checks))))
    if spec.command is not None:
        jb.output(MATCHED_COMMAND, step_output(CHECK_COMMAND_POSITION, MATCHED_COMMAND))

    if fragment is not None:
        for name, value in fragment.outputs.items():
            validate_expression_safety(value, ctx.policy)
            jb.output(name, value)

    if ctx.condition is not None and not ctx.condition_job_refs:
        jb.guarded_by(ctx.condition)

    return jb.build()


def reaction_step(ctx: BuildContext) -> Step:
    return handler_step(
        ctx.options,
        "Add reaction to the triggering item",
        "add_reaction",
        id=REACTION_STEP,
        env={"FLOWGATE_REACTION": str(ctx.spec.reaction)},
    )


def grant_reaction(jb: JobBuilder) -> None:
    jb.grant(PermissionScope.DISCUSSIONS, PermissionLevel.WRITE)
    jb.grant(PermissionScope.ISSUES, PermissionLevel.WRITE)
    jb.grant(PermissionScope.PULL_REQUESTS, PermissionLevel.WRITE)

