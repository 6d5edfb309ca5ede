# engine.py
"""
Agent engines.

An engine contributes the steps that actually run the agent and the
outputs it declares. The graph builder only needs that much; installing
runtimes or wiring tool servers is the engine's own business.
"""
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .dsl import sh
from .errors import ConfigurationError
from .model import Step

PROMPT_PATH = "/tmp/flowgate/prompt.md"
OUTPUT_PATH = "/tmp/flowgate/safe_output.jsonl"
LOG_PATH = "/tmp/flowgate/agent.log"


class Engine(Protocol):
    id: str

    def steps(self, config: Mapping[str, Any]) -> List[Step]:
        ...

    def declared_outputs(self) -> Dict[str, str]:
        ...


@dataclass(frozen=True)
class CommandEngine:
    """Engine that runs a CLI against the prompt file."""
    id: str
    command: str
    default_model: str = ""
    extra_args: List[str] = field(default_factory=list)

    def steps(self, config: Mapping[str, Any]) -> List[Step]:
        model = str(config.get("model") or self.default_model)
        args = [self.command, *self.extra_args]
        if model:
            args += ["--model", model]
        args += ["--prompt-file", PROMPT_PATH]
        cmd = " ".join(shlex.quote(a) for a in args) + f" 2>&1 | tee {LOG_PATH}"
        return [
            sh(
                "Record engine info",
                f'echo "model={model or "default"}" >> "$GITHUB_OUTPUT"',
                id="engine_info",
            ),
            sh(
                f"Run {self.id}",
                cmd,
                id="agentic_execution",
                env={"FLOWGATE_SAFE_OUTPUTS": OUTPUT_PATH},
            ),
        ]

    def declared_outputs(self) -> Dict[str, str]:
        return {"model": "${{ steps.engine_info.outputs.model }}"}


_ENGINES: Dict[str, Engine] = {
    "copilot": CommandEngine("copilot", "copilot", extra_args=["--allow-all-tools"]),
    "claude": CommandEngine("claude", "claude", extra_args=["--print"]),
    "codex": CommandEngine("codex", "codex", extra_args=["exec"]),
}


def get_engine(engine_id: str, config: Optional[Mapping[str, Any]] = None) -> Engine:
    if engine_id == "custom":
        command = (config or {}).get("command")
        if not isinstance(command, str) or not command:
            raise ConfigurationError("engine.command", "custom engine requires a 'command'")
        return CommandEngine("custom", command)
    try:
        return _ENGINES[engine_id]
    except KeyError:
        raise ConfigurationError(
            "engine", f"unknown engine '{engine_id}'. Known: {', '.join(sorted(_ENGINES))}, custom"
        ) from None
