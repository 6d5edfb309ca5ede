# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from flowgate.compiler import Compiler, compile_many
from flowgate.errors import ConfigurationError, UnauthorizedExpressionError
from flowgate.expr.safety import ExpressionPolicy, scan
from flowgate.frontmatter import parse_file
from flowgate.render import lock_path_for, render_workflow, write_lock_file
from flowgate.settings import LOG_LEVEL, CompilerOptions
from flowgate.ui.console import Console, get_console, set_console

WORKFLOWS_DIR = Path(".github") / "workflows"


def find_workflow_files(root: Path = WORKFLOWS_DIR) -> list[Path]:
    """
    Find all workflow sources under `root`.

    Returns:
        Sorted list of markdown workflow paths
    """
    if not root.is_dir():
        return []
    return sorted(p for p in root.glob("*.md") if p.is_file())


def discover_workflows(workflow_args: tuple[str, ...]) -> list[Path]:
    """
    Resolve workflow files from arguments or discovery.

    Raises:
        SystemExit: If a named workflow is missing or nothing can be found
    """
    console = get_console()

    if workflow_args:
        paths = []
        for arg in workflow_args:
            path = Path(arg)
            if not path.exists() and path.suffix != ".md":
                path = Path(str(path) + ".md")
            if not path.exists():
                candidate = WORKFLOWS_DIR / path.name
                if candidate.exists():
                    path = candidate
            if not path.exists():
                console.print_error(
                    "Workflow file not found",
                    f"Could not find workflow file: {arg}",
                    suggestion="Specify a path to a markdown workflow:\n  flowgate compile .github/workflows/triage.md",
                )
                sys.exit(1)
            paths.append(path)
        return paths

    paths = find_workflow_files()
    if not paths:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {WORKFLOWS_DIR}/*.md"],
            suggestion="Create a workflow file under .github/workflows/ or pass one explicitly:\n"
            "  flowgate compile path/to/workflow.md",
        )
        sys.exit(1)
    return paths


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """flowgate: compile markdown agent workflows into gated CI pipelines."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    if debug:
        logging.getLogger("flowgate").setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command("compile")
@click.argument("workflows", nargs=-1)
@click.option("--output-dir", default=None, type=click.Path(file_okay=False), help="Directory for .lock.yml files")
@click.option("--check", is_flag=True, default=False, help="Fail if any lock file is missing or out of date")
@click.option("--workers", default=None, type=int, help="Number of parallel workers")
@click.option("--allow-secret", "allowed_secrets", multiple=True, help="Secret name that may be interpolated")
def compile_cmd(workflows, output_dir, check, workers, allowed_secrets):
    """Compile workflow markdown files into pipeline YAML."""
    console = get_console()
    paths = discover_workflows(workflows)
    out_dir = Path(output_dir) if output_dir else None

    options = CompilerOptions()
    if allowed_secrets:
        options = options.with_overrides(allowed_secrets=options.allowed_secrets | frozenset(allowed_secrets))
    compiler = Compiler(options)

    console.print_compile_started(len(paths), output_dir)

    statuses: dict[str, str] = {}
    try:
        for result in compile_many(paths, compiler, max_workers=workers):
            source = Path(result.source)
            if not result.ok:
                statuses[result.source] = "failed"
                if isinstance(result.error, UnauthorizedExpressionError):
                    console.print_findings(result.source, result.error)
                else:
                    console.print_error("Compilation failed", f"{result.source}: {result.error}")
                continue

            target = lock_path_for(source, out_dir)
            if check:
                current = target.read_text(encoding="utf-8") if target.exists() else None
                if current != render_workflow(result.compiled):
                    console.print_stale(result.source, str(target))
                    statuses[result.source] = "stale"
                else:
                    statuses[result.source] = "ok"
                continue

            changed = write_lock_file(result.compiled, target)
            console.print_compiled(result.source, str(target), result.compiled.graph.names, changed)
            statuses[result.source] = "ok"
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results(statuses)
    if any(v != "ok" for v in statuses.values()):
        sys.exit(1)


@cli.command("validate-expressions")
@click.argument("workflow", type=click.Path(exists=True, dir_okay=False))
@click.option("--allow-secret", "allowed_secrets", multiple=True, help="Secret name that may be interpolated")
def validate_expressions(workflow, allowed_secrets):
    """Check every ${{ }} expression in a workflow's markdown body."""
    console = get_console()
    try:
        parsed = parse_file(workflow, resolve_imports=False)
    except ConfigurationError as e:
        console.print_error("Invalid workflow", f"{workflow}: {e}")
        sys.exit(1)
    policy = ExpressionPolicy(allowed_secrets=CompilerOptions().allowed_secrets | frozenset(allowed_secrets))
    findings = scan(parsed.markdown, policy)
    if findings:
        console.print_findings(workflow, UnauthorizedExpressionError(findings))
        sys.exit(1)
    console.print_info(f"{workflow}: all expressions are allowed")


if __name__ == "__main__":
    cli()
