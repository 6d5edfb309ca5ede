# stages/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..capabilities import CapabilityRegistry
from ..constants import PRE_ACTIVATION, SCRIPTS_DIR
from ..dag import JobGraph
from ..dsl import script, uses
from ..engine import Engine
from ..expr.nodes import ExpressionNode
from ..expr.safety import ExpressionPolicy
from ..model import Step
from ..settings import CompilerOptions
from ..spec import WorkflowSpec

# custom job groups, in build order
EARLY = "pre"
MIDDLE = "middle"
LATE = "late"


@dataclass
class BuildContext:
    """Everything a stage may read. Only `graph` changes between stages."""
    spec: WorkflowSpec
    graph: JobGraph
    options: CompilerOptions
    engine: Engine
    registry: CapabilityRegistry
    policy: ExpressionPolicy
    source_hash: str
    condition: Optional[ExpressionNode] = None
    # custom jobs referenced as needs.<job>. by the user condition
    condition_job_refs: List[str] = field(default_factory=list)
    # custom job name -> EARLY | MIDDLE | LATE, in build order
    custom_groups: Dict[str, str] = field(default_factory=dict)

    def custom_jobs_in(self, group: str) -> List[str]:
        return [name for name, g in self.custom_groups.items() if g == group]

    def custom_jobs_needing(self, job: str) -> List[str]:
        jobs = self.spec.custom_jobs
        return [n for n in self.custom_groups if job in jobs[n].needs]

    @property
    def pre_activation_built(self) -> bool:
        return PRE_ACTIVATION in self.graph

    @property
    def condition_on_activation(self) -> bool:
        """
        Whether activation evaluates the user condition.

        True when the condition references no custom job, or only custom
        jobs that need pre_activation. Otherwise the agent carries it.
        """
        if self.condition is None:
            return False
        jobs = self.spec.custom_jobs
        return all(PRE_ACTIVATION in jobs[ref].needs for ref in self.condition_job_refs)


def setup_step(options: CompilerOptions) -> Step:
    return uses("Setup scripts", options.setup_action, with_={"destination": SCRIPTS_DIR})


def handler_step(
    options: CompilerOptions,
    name: str,
    handler: str,
    *,
    id: Optional[str] = None,
    if_: Optional[ExpressionNode] = None,
    env: Optional[Dict[str, str]] = None,
) -> Step:
    """github-script step that runs one of the bundled handler scripts."""
    body = (
        f"const {{ setupGlobals }} = require('{SCRIPTS_DIR}/setup_globals.cjs');\n"
        "setupGlobals(core, github, context, exec, io);\n"
        f"const {{ main }} = require('{SCRIPTS_DIR}/{handler}.cjs');\n"
        "await main();\n"
    )
    return script(name, options.script_action, body, id=id, if_=if_, env=env)
