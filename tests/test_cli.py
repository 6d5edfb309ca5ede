"""
Tests for the flowgate command line.
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from flowgate.cli import cli, find_workflow_files
from flowgate.compiler import Compiler, compile_many
from flowgate.errors import ConfigurationError

from conftest import workflow_text

TRIAGE = "on: issues\nsafe-outputs:\n  add-labels: {}"
WORKFLOWS = Path(".github") / "workflows"


@pytest.fixture
def runner():
    return CliRunner()


def _write(path: Path, frontmatter: str, body: str = "Label the issue.\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(workflow_text(frontmatter, body), encoding="utf-8")
    return path


def test_compile_discovers_and_writes_lock_files(runner):
    with runner.isolated_filesystem():
        _write(WORKFLOWS / "triage.md", TRIAGE)
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 0, result.output
        lock = WORKFLOWS / "triage.lock.yml"
        assert lock.exists()
        assert "COMPILED" in result.output
        assert "(written)" in result.output

        again = runner.invoke(cli, ["compile"])
        assert again.exit_code == 0
        assert "(unchanged)" in again.output


def test_compile_check_detects_stale_lock_files(runner):
    with runner.isolated_filesystem():
        source = _write(WORKFLOWS / "triage.md", TRIAGE)
        assert runner.invoke(cli, ["compile"]).exit_code == 0
        assert runner.invoke(cli, ["compile", "--check"]).exit_code == 0

        _write(source, TRIAGE, "Label and prioritize the issue.\n")
        result = runner.invoke(cli, ["compile", "--check"])
        assert result.exit_code == 1
        assert "STALE" in result.output


def test_compile_named_workflow_into_output_dir(runner):
    with runner.isolated_filesystem():
        _write(Path("wf") / "triage.md", TRIAGE)
        result = runner.invoke(cli, ["compile", "wf/triage", "--output-dir", "out"])
        assert result.exit_code == 0, result.output
        assert (Path("out") / "triage.lock.yml").exists()


def test_compile_reports_unauthorized_expressions(runner):
    with runner.isolated_filesystem():
        _write(WORKFLOWS / "triage.md", TRIAGE, "Body: ${{ github.event.issue.body }}\n")
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 1
        assert "github.event.issue.body" in result.output
        assert not (WORKFLOWS / "triage.lock.yml").exists()


def test_allow_secret_option(runner):
    with runner.isolated_filesystem():
        _write(WORKFLOWS / "deploy.md", "on: issues", "Token ${{ secrets.DEPLOY_TOKEN }}\n")
        assert runner.invoke(cli, ["compile"]).exit_code == 1
        result = runner.invoke(cli, ["compile", "--allow-secret", "DEPLOY_TOKEN"])
        assert result.exit_code == 0, result.output


def test_compile_without_workflows_fails(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 1
        assert "No workflow file found" in result.output


def test_compile_missing_named_workflow_fails(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["compile", "ghost"])
        assert result.exit_code == 1
        assert "Could not find workflow file: ghost" in result.output


def test_validate_expressions(runner):
    with runner.isolated_filesystem():
        good = _write(Path("good.md"), "on: issues", "Issue #${{ github.event.issue.number }}\n")
        bad = _write(Path("bad.md"), "on: issues", "${{ github.event.comment.body }} ${{ runner.os }}\n")

        ok = runner.invoke(cli, ["validate-expressions", str(good)])
        assert ok.exit_code == 0
        assert "all expressions are allowed" in ok.output

        failed = runner.invoke(cli, ["validate-expressions", str(bad)])
        assert failed.exit_code == 1
        assert "github.event.comment.body" in failed.output
        assert "runner.os" in failed.output


def test_find_workflow_files(tmp_path):
    wf = tmp_path / "workflows"
    wf.mkdir()
    (wf / "b.md").write_text("x")
    (wf / "a.md").write_text("x")
    (wf / "a.lock.yml").write_text("x")
    assert [p.name for p in find_workflow_files(wf)] == ["a.md", "b.md"]
    assert find_workflow_files(tmp_path / "missing") == []


def test_compile_many_keeps_order_and_isolates_failures(tmp_path, options, schema_cache):
    good = _write(tmp_path / "good.md", TRIAGE)
    bad = _write(tmp_path / "bad.md", "on: issues\npermissions:\n  issues: write")
    results = compile_many([bad, good], Compiler(options, schema=schema_cache), max_workers=2)
    assert [r.source for r in results] == [str(bad), str(good)]
    assert not results[0].ok
    assert isinstance(results[0].error, ConfigurationError)
    assert results[1].ok
    assert results[1].compiled.graph.names[-1] == "conclusion"


def test_validate_expressions_reports_invalid_frontmatter(runner):
    with runner.isolated_filesystem():
        Path("broken.md").write_text("---\non: issues\nBody without a closing line\n", encoding="utf-8")
        result = runner.invoke(cli, ["validate-expressions", "broken.md"])
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Invalid workflow" in result.output
        assert "not closed" in result.output
