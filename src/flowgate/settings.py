from __future__ import annotations
import os
from dataclasses import dataclass, field, replace
from typing import FrozenSet

from .expr.safety import parse_allowed_secrets

RUNS_ON = os.environ.get("FLOWGATE_RUNS_ON", "ubuntu-latest")
SCRIPT_ACTION = os.environ.get("FLOWGATE_SCRIPT_ACTION", "actions/github-script@v8")
SETUP_ACTION = os.environ.get("FLOWGATE_SETUP_ACTION", "flowgate/actions/setup@v1")
CHECKOUT_ACTION = os.environ.get("FLOWGATE_CHECKOUT_ACTION", "actions/checkout@v5")
ALLOWED_SECRETS = parse_allowed_secrets(os.environ.get("FLOWGATE_ALLOWED_SECRETS"))
LOG_LEVEL = os.environ.get("FLOWGATE_LOG_LEVEL", "WARNING")
AGENT_TIMEOUT_MINUTES = int(os.environ.get("FLOWGATE_AGENT_TIMEOUT_MINUTES", "20"))


@dataclass(frozen=True)
class CompilerOptions:
    runs_on: str = RUNS_ON
    script_action: str = SCRIPT_ACTION
    setup_action: str = SETUP_ACTION
    checkout_action: str = CHECKOUT_ACTION
    allowed_secrets: FrozenSet[str] = field(default_factory=lambda: ALLOWED_SECRETS)
    agent_timeout_minutes: int = AGENT_TIMEOUT_MINUTES
    safe_outputs_timeout_minutes: int = 15

    def with_overrides(self, **changes) -> "CompilerOptions":
        return replace(self, **changes)
