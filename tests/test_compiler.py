"""
Tests for job graph synthesis.

Each test compiles a small frontmatter dict and checks the jobs, guards,
dependency edges, permissions and outputs of the resulting graph.
"""

import pytest

from flowgate.compiler import Compiler
from flowgate.errors import (
    ConfigurationError,
    DeveloperError,
    ExpressionSyntaxError,
    StageError,
    UnauthorizedExpressionError,
)
from flowgate.expr.builder import and_, step_output_is_true, workflow_run_repo_safety
from flowgate.permissions import PermissionLevel
from flowgate.stages import build_pre_activation

from conftest import compile_fm, guard_source, make_context, make_spec, step_ids

LINT_STEPS = [{"name": "Lint", "id": "lint", "run": "echo ok=true >> $GITHUB_OUTPUT"}]


def assert_well_formed(graph):
    names = graph.names
    for i, job in enumerate(graph):
        for need in job.needs:
            assert need in names[:i], f"{job.name} needs {need}, which is not built before it"
    graph.levels()


# ============================================================================
# Pre-activation
# ============================================================================


def test_membership_and_stop_time_fold_into_activated(compiler):
    graph = compile_fm(compiler, {"on": {"issues": {"types": ["opened"]}, "stop-after": "+48h"}})

    pre = graph["pre_activation"]
    assert pre.outputs["activated"] == (
        "${{ (steps.check_membership.outputs.is_team_member == 'true') && "
        "(steps.check_stop_time.outputs.stop_time_ok == 'true') }}"
    )
    assert step_ids(graph, "pre_activation") == ["check_membership", "check_stop_time"]
    assert pre.guard is None


def test_checks_run_in_configuration_order_and_fold_in_gate_order(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": {
                "issues": None,
                "stop-after": "2026-12-31",
                "skip-if-match": "is:open label:duplicate",
                "skip-if-no-match": {"query": "is:open label:ready", "min": 2},
                "skip-roles": ["admin"],
            },
            "rate-limit": {"max": 3, "window": 30},
        },
    )
    assert step_ids(graph, "pre_activation") == [
        "check_membership",
        "check_rate_limit",
        "check_stop_time",
        "check_skip_if_match",
        "check_skip_if_no_match",
        "check_skip_roles",
    ]
    expected = and_(
        step_output_is_true("check_membership", "is_team_member"),
        step_output_is_true("check_stop_time", "stop_time_ok"),
        step_output_is_true("check_skip_if_match", "skip_check_ok"),
        step_output_is_true("check_skip_if_no_match", "skip_no_match_check_ok"),
        step_output_is_true("check_rate_limit", "rate_limit_ok"),
        step_output_is_true("check_skip_roles", "skip_roles_ok"),
    )
    pre = graph["pre_activation"]
    assert pre.outputs["activated"] == expected.render()
    # rate limiting reads workflow run history
    assert pre.permissions.get("actions") is PermissionLevel.READ


def test_skip_query_bounds_reach_their_checks(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": {
                "issues": None,
                "skip-if-match": {"query": "is:open label:duplicate", "max": 2},
                "skip-if-no-match": {"query": "is:open", "min": 3},
            }
        },
    )
    steps = {s.id: s for s in graph["pre_activation"].steps if s.id}
    assert steps["check_skip_if_match"].env["FLOWGATE_SKIP_MAX_MATCHES"] == "2"
    assert steps["check_skip_if_no_match"].env["FLOWGATE_SKIP_MIN_MATCHES"] == "3"


def test_zero_checks_is_a_developer_error(options):
    spec = make_spec({"on": {"schedule": [{"cron": "0 9 * * 1"}]}})
    with pytest.raises(DeveloperError):
        build_pre_activation(make_context(spec, options))


def test_no_checks_means_no_pre_activation(compiler):
    graph = compile_fm(compiler, {"on": {"schedule": [{"cron": "0 9 * * 1"}]}})
    assert graph.names == ["activation", "agent", "conclusion"]
    assert graph["activation"].needs == []
    assert graph["activation"].guard is None


def test_pre_activation_fragment_without_checks_is_rejected(compiler):
    with pytest.raises(ConfigurationError) as exc:
        compile_fm(compiler, {"on": "schedule", "jobs": {"pre-activation": {"steps": LINT_STEPS}}})
    assert exc.value.field == "jobs.pre-activation"


def test_pre_activation_fragment_steps_and_outputs(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "jobs": {
                "pre-activation": {
                    "steps": LINT_STEPS,
                    "outputs": {"lint_ok": "${{ steps.lint.outputs.ok }}"},
                }
            },
        },
    )
    pre = graph["pre_activation"]
    assert step_ids(graph, "pre_activation") == ["check_membership", "lint"]
    assert pre.outputs["lint_ok"] == "${{ steps.lint.outputs.ok }}"


def test_pre_activation_fragment_outputs_are_validated(compiler):
    with pytest.raises(UnauthorizedExpressionError):
        compile_fm(
            compiler,
            {
                "on": "issues",
                "jobs": {"pre-activation": {"outputs": {"title": "${{ github.event.issue.body }}"}}},
            },
        )


# ============================================================================
# Default pipeline shape
# ============================================================================


def test_default_pipeline(compiler):
    graph = compile_fm(compiler, {"on": "issues"})
    assert graph.names == ["pre_activation", "activation", "agent", "conclusion"]
    assert graph["activation"].needs == ["pre_activation"]
    assert guard_source(graph, "activation") == "needs.pre_activation.outputs.activated == 'true'"
    assert graph["agent"].needs == ["activation"]
    assert graph["agent"].guard is None
    assert graph["conclusion"].needs == ["agent", "activation"]
    assert guard_source(graph, "conclusion") == "(always()) && (needs.agent.result != 'skipped')"
    assert_well_formed(graph)


def test_every_job_reads_contents(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {}}})
    for job in graph:
        assert job.permissions.get("contents") is not PermissionLevel.NONE, job.name


def test_agent_never_gets_write(compiler):
    graph = compile_fm(
        compiler,
        {"on": "issues", "permissions": {"issues": "read"}, "safe-outputs": {"add-comment": {}}},
    )
    agent = graph["agent"]
    assert agent.permissions.to_dict() == {"contents": "read", "issues": "read"}
    assert not agent.permissions.has_write()


def test_agent_write_permission_is_rejected(compiler):
    with pytest.raises(ConfigurationError) as exc:
        compile_fm(compiler, {"on": "issues", "permissions": {"issues": "write"}})
    assert exc.value.field == "permissions.issues"


def test_agent_steps_and_timeout(compiler):
    graph = compile_fm(compiler, {"on": "issues", "engine": {"id": "claude", "model": "sonnet"}, "timeout-minutes": 7})
    agent = graph["agent"]
    assert agent.timeout_minutes == 7
    assert step_ids(graph, "agent") == ["engine_info", "agentic_execution"]
    run = agent.steps[-1].run
    assert "claude --print --model sonnet" in run
    assert agent.outputs["model"] == "${{ steps.engine_info.outputs.model }}"


# ============================================================================
# Safe outputs and detection
# ============================================================================


def test_read_only_capability_grants_no_write(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"missing-tool": {}}})
    safe = graph["safe_outputs"]
    assert safe.permissions.to_dict() == {"contents": "read"}
    assert not safe.permissions.has_write()


def test_safe_outputs_permissions_are_merged(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {}, "add-comment": {}}})
    safe = graph["safe_outputs"]
    assert safe.permissions.to_dict() == {
        "contents": "read",
        "discussions": "write",
        "issues": "write",
        "pull-requests": "write",
    }
    assert step_ids(graph, "safe_outputs") == ["add_comment", "create_issue"]
    assert safe.outputs == {
        "add_comment_comment_url": "${{ steps.add_comment.outputs.comment_url }}",
        "create_issue_issue_url": "${{ steps.create_issue.outputs.issue_url }}",
    }


def test_one_safe_outputs_job_with_detection(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {}, "add-labels": {}}})
    assert graph.names == ["pre_activation", "activation", "agent", "detection", "safe_outputs", "conclusion"]
    safe = graph["safe_outputs"]
    assert safe.needs == ["agent", "detection"]
    assert guard_source(graph, "safe_outputs") == (
        "((!cancelled()) && (needs.agent.result != 'skipped')) && "
        "(needs.detection.outputs.success == 'true')"
    )
    assert graph["detection"].needs == ["agent"]
    assert guard_source(graph, "detection") == (
        "(needs.agent.outputs.output_types != '') || (needs.agent.outputs.has_patch == 'true')"
    )
    assert_well_formed(graph)


def test_safe_outputs_without_detection(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"noop": {}, "threat-detection": False}})
    assert "detection" not in graph
    assert graph["safe_outputs"].needs == ["agent"]
    assert guard_source(graph, "safe_outputs") == "(!cancelled()) && (needs.agent.result != 'skipped')"


def test_create_pull_request_needs_activation(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-pull-request": {"fallback-as-issue": False}}})
    safe = graph["safe_outputs"]
    assert safe.needs == ["agent", "detection", "activation"]
    assert safe.permissions.to_dict() == {"contents": "write", "pull-requests": "write"}


def test_capability_options_reach_the_handler(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {"max": 2, "labels": ["bot"]}}})
    step = graph["safe_outputs"].steps[-1]
    assert step.env["FLOWGATE_HANDLER_CONFIG"] == '{"labels": ["bot"], "max": 2}'
    assert step.env["FLOWGATE_AGENT_OUTPUT"] == "${{ needs.agent.outputs.output }}"


def test_github_token_must_be_an_allowed_secret(compiler):
    graph = compile_fm(
        compiler, {"on": "issues", "safe-outputs": {"noop": {}, "github-token": "${{ secrets.GITHUB_TOKEN }}"}}
    )
    assert graph["safe_outputs"].steps[-1].env["GITHUB_TOKEN"] == "${{ secrets.GITHUB_TOKEN }}"

    with pytest.raises(UnauthorizedExpressionError):
        compile_fm(compiler, {"on": "issues", "safe-outputs": {"noop": {}, "github-token": "${{ secrets.PAT }}"}})


def test_agent_collects_output_when_safe_outputs_enabled(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {}}})
    agent = graph["agent"]
    assert "collect_output" in agent.step_ids()
    assert agent.outputs["output_types"] == "${{ steps.collect_output.outputs.output_types }}"


def test_conclusion_exposes_urls_and_depends_on_everything(compiler):
    graph = compile_fm(compiler, {"on": "issues", "safe-outputs": {"create-issue": {}, "noop": {}}})
    conclusion = graph["conclusion"]
    assert conclusion.needs == ["agent", "activation", "safe_outputs", "detection"]
    assert conclusion.outputs["create_issue_issue_url"] == "${{ needs.safe_outputs.outputs.create_issue_issue_url }}"
    assert conclusion.outputs["noop_message"] == "${{ steps.noop.outputs.noop_message }}"
    assert guard_source(graph, "conclusion") == "(always()) && (needs.agent.result != 'skipped')"


# ============================================================================
# Commands, reactions, status comments, locking
# ============================================================================


def test_command_workflow(compiler):
    graph = compile_fm(compiler, {"on": {"command": "fix"}})
    pre = graph["pre_activation"]
    assert step_ids(graph, "pre_activation") == ["react", "check_membership", "check_command_position"]
    assert pre.outputs["matched_command"] == "${{ steps.check_command_position.outputs.matched_command }}"
    assert pre.permissions.to_dict() == {
        "contents": "read",
        "discussions": "write",
        "issues": "write",
        "pull-requests": "write",
    }

    activation = graph["activation"]
    assert "react" not in activation.step_ids()
    assert activation.outputs["comment_id"] == "${{ steps.status_comment.outputs.comment_id }}"
    assert activation.outputs["slash_command"] == "${{ needs.pre_activation.outputs.matched_command }}"

    conclusion = graph["conclusion"]
    env = conclusion.steps[-1].env
    assert env["FLOWGATE_COMMENT_ID"] == "${{ needs.activation.outputs.comment_id }}"
    assert env["FLOWGATE_AGENT_CONCLUSION"] == "${{ needs.agent.result }}"


def test_status_comment_off_leaves_empty_outputs(compiler):
    graph = compile_fm(compiler, {"on": "issues"})
    assert graph["activation"].outputs["comment_id"] == ""
    assert graph["activation"].permissions.to_dict() == {"contents": "read"}


def test_reaction_without_pre_activation_runs_in_activation(compiler):
    graph = compile_fm(compiler, {"on": {"schedule": [{"cron": "0 9 * * 1"}], "reaction": "rocket"}})
    assert "pre_activation" not in graph
    assert "react" in graph["activation"].step_ids()
    assert graph["activation"].permissions.get("issues") is PermissionLevel.WRITE


def test_lock_for_agent(compiler):
    graph = compile_fm(compiler, {"on": {"issues": {"types": ["opened"], "lock-for-agent": True}}})
    activation = graph["activation"]
    lock = activation.steps[-1]
    assert lock.id == "lock_issue"
    assert lock.if_.source() == "(github.event_name == 'issues') || (github.event_name == 'issue_comment')"
    assert activation.outputs["issue_locked"] == "${{ steps.lock_issue.outputs.locked }}"
    assert activation.permissions.get("issues") is PermissionLevel.WRITE
    assert graph["conclusion"].steps[-1].id == "unlock_issue"


def test_computed_text_only_when_referenced(compiler):
    plain = compile_fm(compiler, {"on": "issues"})
    assert "compute_text" not in plain["activation"].step_ids()

    graph = compile_fm(compiler, {"on": "issues"}, "Summarize: ${{ needs.activation.outputs.text }}\n")
    activation = graph["activation"]
    assert "compute_text" in activation.step_ids()
    assert activation.outputs["text"] == "${{ steps.compute_text.outputs.text }}"


# ============================================================================
# Conditions
# ============================================================================


def test_user_condition_guards_pre_activation_and_activation(compiler):
    graph = compile_fm(compiler, {"on": "issues", "if": "${{ github.event.issue.state == 'open' }}"})
    cond = "github.event.issue.state == 'open'"
    assert guard_source(graph, "pre_activation") == cond
    assert guard_source(graph, "activation") == f"(needs.pre_activation.outputs.activated == 'true') && ({cond})"
    assert graph["agent"].guard is None


def test_workflow_run_gets_repository_safety_check(compiler):
    graph = compile_fm(compiler, {"on": {"workflow_run": {"workflows": ["CI"], "types": ["completed"]}}})
    guard = guard_source(graph, "activation")
    assert guard == (
        "(needs.pre_activation.outputs.activated == 'true') && "
        f"({workflow_run_repo_safety().source()})"
    )


def test_condition_on_middle_custom_job_moves_to_agent(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "if": "needs.precheck.outputs.ok == 'true'",
            "jobs": {"precheck": {"steps": LINT_STEPS, "outputs": {"ok": "${{ steps.lint.outputs.ok }}"}}},
        },
    )
    assert graph.names == ["pre_activation", "activation", "precheck", "agent", "conclusion"]
    assert graph["pre_activation"].guard is None
    assert guard_source(graph, "activation") == "needs.pre_activation.outputs.activated == 'true'"
    assert graph["precheck"].needs == ["activation"]
    assert graph["agent"].needs == ["activation", "precheck"]
    assert guard_source(graph, "agent") == "needs.precheck.outputs.ok == 'true'"
    assert_well_formed(graph)


def test_condition_on_job_after_pre_activation_is_combined_at_activation(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "if": "needs.gate.outputs.ok == 'true'",
            "jobs": {
                "gate": {
                    "needs": "pre_activation",
                    "steps": LINT_STEPS,
                    "outputs": {"ok": "${{ steps.lint.outputs.ok }}"},
                }
            },
        },
    )
    assert graph.names == ["pre_activation", "gate", "activation", "agent", "conclusion"]
    assert graph["pre_activation"].guard is None
    assert graph["activation"].needs == ["pre_activation", "gate"]
    assert guard_source(graph, "activation") == (
        "(needs.pre_activation.outputs.activated == 'true') && (needs.gate.outputs.ok == 'true')"
    )
    assert graph["agent"].guard is None
    assert graph["agent"].needs == ["activation"]
    assert_well_formed(graph)


def test_condition_on_independent_early_job_stays_on_agent(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "if": "needs.early.outputs.ok == 'true'",
            "jobs": {
                "early": {
                    "needs": [],
                    "steps": LINT_STEPS,
                    "outputs": {"ok": "${{ steps.lint.outputs.ok }}"},
                }
            },
        },
    )
    assert graph.names == ["pre_activation", "early", "activation", "agent", "conclusion"]
    assert graph["pre_activation"].guard is None
    assert guard_source(graph, "activation") == "needs.pre_activation.outputs.activated == 'true'"
    assert guard_source(graph, "agent") == "needs.early.outputs.ok == 'true'"
    assert graph["agent"].needs == ["activation", "early"]
    assert_well_formed(graph)


def test_condition_on_mixed_jobs_stays_on_agent_with_direct_edges(compiler):
    outputs = {"ok": "${{ steps.lint.outputs.ok }}"}
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "if": "needs.gate.outputs.ok == 'true' && needs.early.outputs.ok == 'true'",
            "jobs": {
                "gate": {"needs": "pre_activation", "steps": LINT_STEPS, "outputs": outputs},
                "early": {"needs": [], "steps": LINT_STEPS, "outputs": outputs},
            },
        },
    )
    assert guard_source(graph, "activation") == "needs.pre_activation.outputs.activated == 'true'"
    assert graph["agent"].guard is not None
    assert graph["agent"].needs == ["activation", "early", "gate"]
    assert_well_formed(graph)


def test_condition_on_late_job_is_rejected(compiler):
    with pytest.raises(ConfigurationError) as exc:
        compile_fm(
            compiler,
            {
                "on": "issues",
                "if": "needs.notify.outputs.sent == 'true'",
                "jobs": {"notify": {"needs": "agent", "steps": LINT_STEPS}},
            },
        )
    assert exc.value.field == "if"


def test_malformed_condition_names_the_field(compiler):
    with pytest.raises(ExpressionSyntaxError) as exc:
        compile_fm(compiler, {"on": "issues", "if": "github.event_name =="})
    assert exc.value.field == "if"


def test_unauthorized_condition_is_rejected(compiler):
    with pytest.raises(UnauthorizedExpressionError):
        compile_fm(compiler, {"on": "issues", "if": "github.event.issue.body == 'x'"})


# ============================================================================
# Custom jobs
# ============================================================================


def test_custom_jobs_are_placed_by_their_needs(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "safe-outputs": {"create-issue": {}},
            "jobs": {
                "notify": {"needs": ["safe_outputs", "build"], "steps": LINT_STEPS},
                "build": {"steps": LINT_STEPS},
                "early": {"needs": [], "steps": LINT_STEPS},
            },
        },
    )
    assert graph.names == [
        "pre_activation",
        "early",
        "activation",
        "build",
        "agent",
        "detection",
        "safe_outputs",
        "notify",
        "conclusion",
    ]
    assert graph["early"].needs == []
    assert graph["build"].needs == ["activation"]
    assert graph["agent"].needs == ["activation", "build", "early"]
    assert graph["conclusion"].needs[-1] == "notify"
    assert_well_formed(graph)


def test_prompt_reference_forces_direct_edge(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "jobs": {
                "gate": {
                    "needs": "pre_activation",
                    "steps": LINT_STEPS,
                    "outputs": {"ok": "${{ steps.lint.outputs.ok }}"},
                }
            },
        },
        "Gate said ${{ needs.gate.outputs.ok }}\n",
    )
    # reachable through activation, but output references need a direct edge
    assert graph["activation"].needs == ["pre_activation", "gate"]
    assert graph["agent"].needs == ["activation", "gate"]


def test_custom_job_needing_unknown_job(compiler):
    with pytest.raises(ConfigurationError) as exc:
        compile_fm(compiler, {"on": "issues", "jobs": {"notify": {"needs": "safe_outputs", "steps": LINT_STEPS}}})
    assert exc.value.field == "jobs.notify.needs"
    assert "safe_outputs" in exc.value.message


def test_custom_job_cycle(compiler):
    with pytest.raises(ConfigurationError, match="cycle"):
        compile_fm(
            compiler,
            {
                "on": "issues",
                "jobs": {
                    "a": {"needs": "b", "steps": LINT_STEPS},
                    "b": {"needs": "a", "steps": LINT_STEPS},
                },
            },
        )


def test_custom_job_without_steps(compiler):
    with pytest.raises(ConfigurationError, match="must define steps"):
        compile_fm(compiler, {"on": "issues", "jobs": {"empty": {"outputs": {"x": "y"}}}})


def test_custom_job_details(compiler):
    graph = compile_fm(
        compiler,
        {
            "on": "issues",
            "jobs": {
                "deploy": {
                    "if": "github.event_name == 'issues'",
                    "runs-on": "self-hosted",
                    "permissions": {"deployments": "write"},
                    "env": {"STAGE": "prod"},
                    "timeout-minutes": 3,
                    "steps": LINT_STEPS,
                }
            },
        },
    )
    deploy = graph["deploy"]
    assert deploy.guard.render() == "${{ github.event_name == 'issues' }}"
    assert deploy.runs_on == "self-hosted"
    assert deploy.permissions.to_dict() == {"deployments": "write"}
    assert deploy.env == {"STAGE": "prod"}
    assert deploy.timeout_minutes == 3
    assert deploy.steps[0].to_dict() == LINT_STEPS[0]


def test_custom_job_outputs_are_validated(compiler):
    with pytest.raises(UnauthorizedExpressionError):
        compile_fm(
            compiler,
            {"on": "issues", "jobs": {"leak": {"steps": LINT_STEPS, "outputs": {"t": "${{ github.event.comment.body }}"}}}},
        )


# ============================================================================
# Errors and determinism
# ============================================================================


def test_unauthorized_body_reports_every_path(compiler):
    body = "Title ${{ github.event.issue.title }}\nBody ${{ github.event.issue.body }}\nRun ${{ runner.os }}\n"
    with pytest.raises(UnauthorizedExpressionError) as exc:
        compile_fm(compiler, {"on": "issues"}, body)
    assert [f.expression for f in exc.value.findings] == ["github.event.issue.body", "runner.os"]


class _BrokenEngine:
    id = "broken"

    def steps(self, config):
        raise RuntimeError("engine exploded")

    def declared_outputs(self):
        return {}


def test_stage_failures_are_wrapped_with_the_stage_name(options):
    compiler = Compiler(options, engine_resolver=lambda engine_id, config=None: _BrokenEngine())
    with pytest.raises(StageError) as exc:
        compile_fm(compiler, {"on": "issues"})
    assert exc.value.stage == "agent"
    assert isinstance(exc.value.cause, RuntimeError)
    assert "failed to build agent job" in str(exc.value)


def test_unknown_engine(compiler):
    with pytest.raises(ConfigurationError, match="unknown engine"):
        compile_fm(compiler, {"on": "issues", "engine": "gpt-cli"})


def test_custom_engine_requires_command(compiler):
    with pytest.raises(ConfigurationError):
        compile_fm(compiler, {"on": "issues", "engine": {"id": "custom"}})
    graph = compile_fm(compiler, {"on": "issues", "engine": {"id": "custom", "command": "my-agent"}})
    assert "my-agent" in graph["agent"].steps[-1].run


def test_compiling_twice_is_byte_identical(options, schema_cache):
    text = (
        "---\n"
        "on:\n"
        "  command: fix\n"
        "  issues:\n"
        "    types: [labeled]\n"
        "rate-limit:\n"
        "  max: 2\n"
        "safe-outputs:\n"
        "  add-comment: {}\n"
        "  create-issue:\n"
        "    labels: [bot]\n"
        "jobs:\n"
        "  build:\n"
        "    steps:\n"
        "      - run: make\n"
        "---\n"
        "Fix the bug described in ${{ needs.activation.outputs.text }}.\n"
    )
    first = Compiler(options, schema=schema_cache).compile_text(text, ".github/workflows/fix.md").to_yaml()
    second = Compiler(options, schema=schema_cache).compile_text(text, ".github/workflows/fix.md").to_yaml()
    assert first == second


@pytest.mark.parametrize(
    "frontmatter",
    [
        {"on": "issues"},
        {"on": {"command": "fix"}, "safe-outputs": {"create-pull-request": {}}},
        {"on": {"schedule": [{"cron": "0 0 * * *"}]}, "safe-outputs": {"noop": {}}},
        {
            "on": {"issues": {"lock-for-agent": True}, "stop-after": "+1d"},
            "rate-limit": {},
            "safe-outputs": {"add-labels": {}, "threat-detection": False},
            "jobs": {
                "pre": {"needs": "pre_activation", "steps": LINT_STEPS},
                "mid": {"steps": LINT_STEPS},
                "post": {"needs": ["safe_outputs", "mid"], "steps": LINT_STEPS},
            },
        },
    ],
)
def test_graphs_are_acyclic_and_needs_resolve(compiler, frontmatter):
    assert_well_formed(compile_fm(compiler, frontmatter))
