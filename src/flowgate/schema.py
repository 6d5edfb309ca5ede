# schema.py
"""
Frontmatter schema validation.

The compiled schema is process-wide and expensive to build, so it lives in
an explicit SchemaCache that is loaded once (under a lock) and can be
injected into the compiler. Tests pass their own cache or checker.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from importlib import resources
from typing import Any, Dict, List, Mapping, Optional, Protocol

from jsonschema import Draft7Validator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SCHEMA_PACKAGE = "flowgate.schemas"
SCHEMA_FILE = "frontmatter.schema.json"


@dataclass
class SchemaResult:
    ok: bool
    diagnostics: List[str] = field(default_factory=list)


class SchemaChecker(Protocol):
    """Pass/fail oracle over a frontmatter mapping."""

    def check(self, frontmatter: Mapping[str, Any]) -> SchemaResult:
        ...


def load_bundled_schema() -> Dict[str, Any]:
    text = resources.files(SCHEMA_PACKAGE).joinpath(SCHEMA_FILE).read_text(encoding="utf-8")
    return json.loads(text)


class SchemaCache:
    """Initialize-once holder for the compiled frontmatter validator."""

    def __init__(self, schema: Optional[Dict[str, Any]] = None):
        self._schema = schema
        self._validator: Optional[Draft7Validator] = None
        self._lock = threading.Lock()
        self.loads = 0

    def validator(self) -> Draft7Validator:
        if self._validator is not None:
            return self._validator
        with self._lock:
            if self._validator is None:
                schema = self._schema if self._schema is not None else load_bundled_schema()
                Draft7Validator.check_schema(schema)
                self._validator = Draft7Validator(schema)
                self.loads += 1
                logger.debug("frontmatter schema loaded")
        return self._validator

    def check(self, frontmatter: Mapping[str, Any]) -> SchemaResult:
        errors = sorted(self.validator().iter_errors(dict(frontmatter)), key=lambda e: list(e.path))
        diagnostics = []
        for err in errors:
            where = ".".join(str(p) for p in err.path) or "frontmatter"
            diagnostics.append(f"{where}: {err.message}")
        return SchemaResult(not diagnostics, diagnostics)


def validate_frontmatter(frontmatter: Mapping[Any, Any], checker: SchemaChecker) -> None:
    # YAML 1.1 reads a bare `on:` key as boolean True
    normalized = {("on" if k is True else str(k)): v for k, v in frontmatter.items()}
    result = checker.check(normalized)
    if not result.ok:
        first = result.diagnostics[0] if result.diagnostics else "schema validation failed"
        field_name, _, message = first.partition(": ")
        raise ConfigurationError(field_name, message or first)


_default_cache: Optional[SchemaCache] = None
_default_lock = threading.Lock()


def default_schema_cache() -> SchemaCache:
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = SchemaCache()
        return _default_cache
