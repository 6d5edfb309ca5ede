# permissions.py
"""
Per-job permission grants.

A PermissionSet maps each PermissionScope to a PermissionLevel. Stages start
from an empty set and call `accumulate()` for every feature they wire in;
`freeze()` gives the immutable snapshot stored on the Job.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import ConfigurationError


class PermissionScope(str, Enum):
    ACTIONS = "actions"
    ATTESTATIONS = "attestations"
    CHECKS = "checks"
    CONTENTS = "contents"
    DEPLOYMENTS = "deployments"
    DISCUSSIONS = "discussions"
    ID_TOKEN = "id-token"
    ISSUES = "issues"
    MODELS = "models"
    PACKAGES = "packages"
    PAGES = "pages"
    PULL_REQUESTS = "pull-requests"
    REPOSITORY_PROJECTS = "repository-projects"
    SECURITY_EVENTS = "security-events"
    STATUSES = "statuses"


class PermissionLevel(str, Enum):
    NONE = "none"
    READ = "read"
    WRITE = "write"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __str__(self) -> str:
        return self.value


_RANK = {PermissionLevel.NONE: 0, PermissionLevel.READ: 1, PermissionLevel.WRITE: 2}

# rendering order
SCOPE_ORDER = sorted(PermissionScope, key=lambda s: s.value)

# `read-all` covers everything except these
_READ_ALL_EXCLUDED = {PermissionScope.ID_TOKEN, PermissionScope.DISCUSSIONS}


def _scope(value: Any) -> PermissionScope:
    if isinstance(value, PermissionScope):
        return value
    try:
        return PermissionScope(str(value))
    except ValueError:
        raise ConfigurationError("permissions", f"unknown permission scope '{value}'") from None


def _level(value: Any) -> PermissionLevel:
    if isinstance(value, PermissionLevel):
        return value
    try:
        return PermissionLevel(str(value))
    except ValueError:
        raise ConfigurationError(
            "permissions", f"unknown permission level '{value}' (expected none, read or write)"
        ) from None


def _check_pair(scope: PermissionScope, level: PermissionLevel) -> None:
    if scope is PermissionScope.ID_TOKEN and level is PermissionLevel.READ:
        raise ConfigurationError("permissions.id-token", "id-token only accepts 'none' or 'write'")


class PermissionSet:
    def __init__(self, grants: Optional[Mapping[Any, Any]] = None):
        self._grants: Dict[PermissionScope, PermissionLevel] = {}
        self._frozen = False
        for scope, level in (grants or {}).items():
            self.accumulate(scope, level)

    # ---- construction -------------------------------------------------

    @classmethod
    def read_only(cls, *scopes: Any) -> "PermissionSet":
        return cls({s: PermissionLevel.READ for s in scopes})

    @classmethod
    def read_all(cls) -> "PermissionSet":
        return cls({s: PermissionLevel.READ for s in PermissionScope if s not in _READ_ALL_EXCLUDED})

    @classmethod
    def parse(cls, value: Any, *, allow_write: bool = False, field: str = "permissions") -> "PermissionSet":
        """
        Read a frontmatter `permissions:` value.

        Accepts a scope mapping, `read-all`, or `{}`. Write levels are
        rejected unless `allow_write`.
        """
        if value is None:
            return cls()
        if isinstance(value, str):
            if value == "read-all":
                return cls.read_all()
            if value == "write-all" and not allow_write:
                raise ConfigurationError(field, "write-all is not allowed; use safe outputs for writes")
            raise ConfigurationError(field, f"unsupported permissions shorthand '{value}'")
        if not isinstance(value, Mapping):
            raise ConfigurationError(field, "expected a mapping of scope to level")

        ps = cls()
        for raw_scope, raw_level in value.items():
            scope = _scope(raw_scope)
            level = _level(raw_level)
            if level is PermissionLevel.WRITE and not allow_write and scope is not PermissionScope.ID_TOKEN:
                raise ConfigurationError(
                    f"{field}.{scope.value}",
                    "write access is not allowed here; declare a safe output instead",
                )
            ps.accumulate(scope, level)
        return ps

    # ---- mutation -----------------------------------------------------

    def accumulate(self, scope: Any, level: Any) -> "PermissionSet":
        """Raise `scope` to at least `level`. Never lowers a grant."""
        if self._frozen:
            raise TypeError("PermissionSet is frozen")
        s, lv = _scope(scope), _level(level)
        _check_pair(s, lv)
        current = self._grants.get(s)
        if current is None or lv.rank > current.rank:
            self._grants[s] = lv
        return self

    def merge(self, other: "PermissionSet") -> "PermissionSet":
        for scope, level in other.items():
            self.accumulate(scope, level)
        return self

    def freeze(self) -> "PermissionSet":
        snap = PermissionSet()
        snap._grants = dict(self._grants)
        snap._frozen = True
        return snap

    # ---- queries ------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, scope: Any) -> PermissionLevel:
        return self._grants.get(_scope(scope), PermissionLevel.NONE)

    def items(self) -> Iterable[tuple[PermissionScope, PermissionLevel]]:
        return [(s, self._grants[s]) for s in SCOPE_ORDER if s in self._grants]

    def has_write(self) -> bool:
        return any(lv is PermissionLevel.WRITE for lv in self._grants.values())

    def is_empty(self) -> bool:
        return not self._grants

    def to_dict(self) -> Dict[str, str]:
        """Scope -> level, in fixed alphabetical scope order."""
        return {s.value: lv.value for s, lv in self.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"PermissionSet({self.to_dict()!r})"


def merged(*sets: PermissionSet) -> PermissionSet:
    """Pointwise maximum of `sets` as a new, unfrozen PermissionSet."""
    out = PermissionSet()
    for ps in sets:
        out.merge(ps)
    return out


def contents_read() -> PermissionSet:
    return PermissionSet({PermissionScope.CONTENTS: PermissionLevel.READ})
