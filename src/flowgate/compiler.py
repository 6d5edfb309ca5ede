# compiler.py
"""
Workflow compiler: WorkflowSpec -> JobGraph.

Jobs are built in a fixed order and each stage only looks at the
WorkflowSpec and the jobs already in the graph:

    pre_activation -> early custom jobs -> activation -> middle custom jobs
    -> agent -> detection -> safe_outputs -> late custom jobs -> conclusion
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from .capabilities import CapabilityRegistry, default_registry
from .constants import ACTIVATION, AGENT, CONCLUSION, DETECTION, PRE_ACTIVATION, SAFE_OUTPUTS
from .dag import JobGraph
from .engine import Engine, get_engine
from .errors import ConfigurationError, DeveloperError, StageError, UnauthorizedExpressionError
from .expr.builder import parse_condition
from .expr.nodes import split_path
from .expr.safety import ExpressionPolicy, validate_expression_safety
from .frontmatter import ParsedWorkflow, merge_imports, parse_file, parse_text
from .hashing import frontmatter_hash, stable_hash
from .model import Job
from .schema import SchemaCache, SchemaChecker, default_schema_cache, validate_frontmatter
from .settings import CompilerOptions
from .spec import WorkflowSpec
from .stages import (
    BuildContext,
    build_activation,
    build_agent,
    build_conclusion,
    build_custom_job,
    build_detection,
    build_pre_activation,
    build_safe_outputs,
    classify_custom_jobs,
    configured_checks,
)
from .stages.context import EARLY, LATE, MIDDLE

logger = logging.getLogger(__name__)

# errors that already say what is wrong and where
_PASSTHROUGH = (ConfigurationError, UnauthorizedExpressionError, DeveloperError)


@dataclass
class CompiledWorkflow:
    spec: WorkflowSpec
    graph: JobGraph
    source_hash: str

    def to_yaml(self) -> str:
        from .render import render_workflow
        return render_workflow(self)


@dataclass
class CompileResult:
    source: str
    compiled: Optional[CompiledWorkflow] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Compiler:
    def __init__(
        self,
        options: Optional[CompilerOptions] = None,
        *,
        registry: Optional[CapabilityRegistry] = None,
        schema: Optional[Union[SchemaCache, SchemaChecker]] = None,
        engine_resolver: Callable[..., Engine] = get_engine,
    ):
        self.options = options or CompilerOptions()
        self.registry = registry or default_registry()
        self.schema = schema
        self.engine_resolver = engine_resolver

    @property
    def policy(self) -> ExpressionPolicy:
        return ExpressionPolicy(allowed_secrets=frozenset(self.options.allowed_secrets))

    # ---- entry points ---------------------------------------------------

    def compile_file(self, path: Union[str, Path]) -> CompiledWorkflow:
        return self.compile_parsed(parse_file(path, resolve_imports=False))

    def compile_text(self, text: str, source_path: Optional[Union[str, Path]] = None) -> CompiledWorkflow:
        return self.compile_parsed(parse_text(text, Path(source_path) if source_path else None))

    def compile_parsed(self, parsed: ParsedWorkflow) -> CompiledWorkflow:
        if "imports" in parsed.frontmatter:
            base = parsed.source_path.parent if parsed.source_path else Path(".")
            merge_imports(parsed, base)
        # after merging, so edits to imported files change the hash too
        source_hash = frontmatter_hash(parsed.frontmatter, parsed.markdown)
        validate_frontmatter(parsed.frontmatter, self.schema or default_schema_cache())
        spec = WorkflowSpec.from_parsed(parsed, self.registry)
        graph = self.compile(spec, source_hash=source_hash)
        return CompiledWorkflow(spec, graph, source_hash)

    def compile(self, spec: WorkflowSpec, *, source_hash: Optional[str] = None) -> JobGraph:
        ctx = self._context(spec, source_hash)
        logger.debug("compiling %s", spec.name)

        if configured_checks(ctx):
            self._stage(ctx, PRE_ACTIVATION, build_pre_activation)
        elif spec.pre_activation is not None:
            raise ConfigurationError(
                "jobs.pre-activation",
                "custom pre-activation steps need at least one activation check (roles, rate-limit, "
                "stop-after, skip-if-match, skip-if-no-match, skip-roles or a command trigger)",
            )

        self._custom_stage(ctx, EARLY)
        self._stage(ctx, ACTIVATION, build_activation)
        self._custom_stage(ctx, MIDDLE)
        self._stage(ctx, AGENT, build_agent)

        if spec.safe_outputs.enabled:
            if spec.safe_outputs.threat_detection:
                self._stage(ctx, DETECTION, build_detection)
            self._stage(ctx, SAFE_OUTPUTS, build_safe_outputs)

        self._custom_stage(ctx, LATE)
        self._stage(ctx, CONCLUSION, build_conclusion)

        ctx.graph.check_acyclic()
        logger.debug("compiled %s: %s", spec.name, ctx.graph.names)
        return ctx.graph

    # ---- internals ------------------------------------------------------

    def _context(self, spec: WorkflowSpec, source_hash: Optional[str]) -> BuildContext:
        policy = self.policy
        validate_expression_safety(spec.markdown, policy)

        condition = None
        refs: List[str] = []
        if spec.if_ and spec.if_.strip():
            condition = parse_condition(spec.if_)
            validate_expression_safety(condition.render(), policy)
            refs = _custom_job_refs(condition.property_paths(), spec)

        groups = classify_custom_jobs(spec)
        for ref in refs:
            if groups[ref] == LATE:
                raise ConfigurationError("if", f"condition reads outputs of job '{ref}', which runs after the agent")

        engine = self.engine_resolver(spec.engine, spec.engine_config)
        return BuildContext(
            spec=spec,
            graph=JobGraph(),
            options=self.options,
            engine=engine,
            registry=self.registry,
            policy=policy,
            source_hash=source_hash or stable_hash(spec.model_dump(mode="json")),
            condition=condition,
            condition_job_refs=refs,
            custom_groups=groups,
        )

    def _stage(self, ctx: BuildContext, stage: str, build: Callable[[BuildContext], Job]) -> Job:
        try:
            job = build(ctx)
        except _PASSTHROUGH:
            raise
        except Exception as e:
            raise StageError(stage, e) from e
        return ctx.graph.add_job(job)

    def _custom_stage(self, ctx: BuildContext, group: str) -> None:
        for name in ctx.custom_jobs_in(group):
            self._stage(ctx, name, lambda c, n=name: build_custom_job(c, n))


def _custom_job_refs(paths: Sequence[str], spec: WorkflowSpec) -> List[str]:
    jobs = spec.custom_jobs
    refs: List[str] = []
    for path in paths:
        segs = split_path(path)
        if len(segs) >= 2 and segs[0] == "needs" and segs[1] in jobs and segs[1] not in refs:
            refs.append(segs[1])
    return refs


def compile_many(
    paths: Sequence[Union[str, Path]],
    compiler: Optional[Compiler] = None,
    max_workers: Optional[int] = None,
) -> List[CompileResult]:
    """
    Compile several workflow files concurrently.

    One failure does not stop the others; results keep the input order.
    """
    compiler = compiler or Compiler()

    def one(path: Union[str, Path]) -> CompileResult:
        try:
            return CompileResult(str(path), compiler.compile_file(path))
        except (ConfigurationError, UnauthorizedExpressionError, DeveloperError, StageError) as e:
            logger.debug("compile failed for %s: %s", path, e)
            return CompileResult(str(path), error=e)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(one, paths))
