"""
Shared fixtures and helpers for the flowgate test suite.

Compilation tests build a WorkflowSpec straight from a frontmatter dict and
run the compiler on it; file-based tests write markdown into tmp_path.
"""

from pathlib import Path
from textwrap import dedent
from typing import Any, Dict, Optional

import pytest

from flowgate.capabilities import default_registry
from flowgate.compiler import Compiler
from flowgate.dag import JobGraph
from flowgate.engine import get_engine
from flowgate.expr.safety import ExpressionPolicy
from flowgate.schema import SchemaCache
from flowgate.settings import CompilerOptions
from flowgate.spec import WorkflowSpec
from flowgate.stages import BuildContext, classify_custom_jobs

SOURCE_PATH = ".github/workflows/triage.md"
DEFAULT_BODY = "Triage the issue and suggest labels.\n"


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def options() -> CompilerOptions:
    """Options pinned so tests do not depend on FLOWGATE_* env vars."""
    return CompilerOptions(
        runs_on="ubuntu-latest",
        script_action="actions/github-script@v8",
        setup_action="flowgate/actions/setup@v1",
        checkout_action="actions/checkout@v5",
        allowed_secrets=frozenset({"GITHUB_TOKEN"}),
        agent_timeout_minutes=20,
    )


@pytest.fixture(scope="session")
def schema_cache() -> SchemaCache:
    return SchemaCache()


@pytest.fixture
def compiler(options, schema_cache) -> Compiler:
    return Compiler(options, schema=schema_cache)


@pytest.fixture
def workflows_dir(tmp_path) -> Path:
    d = tmp_path / ".github" / "workflows"
    d.mkdir(parents=True)
    return d


# ============================================================================
# Helpers
# ============================================================================


def make_spec(frontmatter: Dict[str, Any], markdown: str = DEFAULT_BODY) -> WorkflowSpec:
    return WorkflowSpec.from_frontmatter(frontmatter, markdown, source_path=SOURCE_PATH)


def compile_fm(compiler: Compiler, frontmatter: Dict[str, Any], markdown: str = DEFAULT_BODY) -> JobGraph:
    """Compile a frontmatter dict and return the job graph."""
    return compiler.compile(make_spec(frontmatter, markdown), source_hash="test-hash")


def make_context(spec: WorkflowSpec, options: CompilerOptions) -> BuildContext:
    """A bare build context with an empty graph, for calling one stage directly."""
    return BuildContext(
        spec=spec,
        graph=JobGraph(),
        options=options,
        engine=get_engine(spec.engine, spec.engine_config),
        registry=default_registry(),
        policy=ExpressionPolicy(allowed_secrets=options.allowed_secrets),
        source_hash="test-hash",
        custom_groups=classify_custom_jobs(spec),
    )


def workflow_text(frontmatter_yaml: str, body: str = DEFAULT_BODY) -> str:
    return f"---\n{dedent(frontmatter_yaml).strip()}\n---\n{body}"


def write_workflow(directory: Path, name: str, frontmatter_yaml: str, body: str = DEFAULT_BODY) -> Path:
    path = directory / name
    path.write_text(workflow_text(frontmatter_yaml, body), encoding="utf-8")
    return path


def step_ids(graph: JobGraph, job: str) -> list:
    return graph[job].step_ids()


def guard_source(graph: JobGraph, job: str) -> Optional[str]:
    guard = graph[job].guard
    return guard.source() if guard is not None else None
