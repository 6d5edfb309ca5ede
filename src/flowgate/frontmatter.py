# frontmatter.py
"""
Split a workflow markdown file into YAML frontmatter and body, and merge
`imports:` fragments into the main frontmatter.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DELIMITER = "---"

# keys whose list values are unioned across imports
_UNION_KEYS = ("bots",)
# same, for keys under `on:`
_ON_UNION_KEYS = ("skip-roles",)
# keys whose mapping values are merged, main file wins per entry
_MAPPING_KEYS = ("safe-outputs", "jobs", "env")


@dataclass
class ParsedWorkflow:
    frontmatter: Dict[str, Any]
    markdown: str
    source_path: Optional[Path] = None
    imported_files: List[str] = field(default_factory=list)


def split_frontmatter(text: str) -> Tuple[str, str]:
    """
    Return (frontmatter_yaml, markdown_body).

    A file without a leading `---` line has no frontmatter.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return "", text
    for idx in range(1, len(lines)):
        if lines[idx].strip() == DELIMITER:
            return "".join(lines[1:idx]), "".join(lines[idx + 1:])
    raise ConfigurationError("frontmatter", "frontmatter is not closed by a '---' line")


def load_frontmatter(yaml_text: str, *, field: str = "frontmatter") -> Dict[str, Any]:
    if not yaml_text.strip():
        return {}
    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise ConfigurationError(field, f"invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(field, "frontmatter must be a mapping")
    return data


def parse_text(text: str, source_path: Optional[Path] = None) -> ParsedWorkflow:
    fm_text, body = split_frontmatter(text)
    return ParsedWorkflow(load_frontmatter(fm_text), body, source_path)


def parse_file(path: str | Path, *, resolve_imports: bool = True) -> ParsedWorkflow:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(str(p), f"cannot read workflow: {e}") from e
    parsed = parse_text(text, p)
    if resolve_imports and "imports" in parsed.frontmatter:
        merge_imports(parsed, p.parent)
    return parsed


def _import_paths(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError("imports", "imports must be a list of paths")
    paths: List[str] = []
    for item in value:
        if isinstance(item, str):
            paths.append(item)
        elif isinstance(item, dict):
            path = item.get("path")
            if not isinstance(path, str):
                raise ConfigurationError("imports", "import object must have a string 'path' field")
            paths.append(path)
        else:
            raise ConfigurationError("imports", "import item must be a string or an object with 'path'")
    return paths


def merge_imports(parsed: ParsedWorkflow, base_dir: Path) -> ParsedWorkflow:
    """
    Breadth-first merge of imported fragments into `parsed`, in place.

    Each file is visited once. A fragment whose YAML fails to parse is
    skipped with a warning and the state merged so far is kept.
    """
    fm = parsed.frontmatter
    queue = deque((rel, base_dir) for rel in _import_paths(fm.pop("imports", None)))
    visited: set[Path] = set()
    if parsed.source_path is not None:
        visited.add(parsed.source_path.resolve())
    bodies: List[str] = []

    while queue:
        rel, rel_base = queue.popleft()
        file_part = rel.split("#", 1)[0]
        if file_part.lower().endswith(".lock.yml"):
            raise ConfigurationError("imports", f"cannot import compiled lock file '{rel}'")
        full = (rel_base / file_part).resolve()
        if full in visited:
            continue
        visited.add(full)
        if not full.is_file():
            raise ConfigurationError("imports", f"imported file not found: '{rel}'")

        try:
            fragment = parse_text(full.read_text(encoding="utf-8"), full)
        except ConfigurationError as e:
            logger.warning("skipping import %s: %s", rel, e)
            continue

        logger.debug("merging import %s", full)
        parsed.imported_files.append(str(full))
        for nested in _import_paths(fragment.frontmatter.pop("imports", None)):
            queue.append((nested, full.parent))
        _merge_fragment(fm, fragment.frontmatter)
        if fragment.markdown.strip():
            bodies.append(fragment.markdown.strip("\n"))

    if bodies:
        parsed.markdown = parsed.markdown.rstrip("\n") + "\n\n" + "\n\n".join(bodies) + "\n"
    return parsed


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return list(value) if isinstance(value, list) else [value]


def _union(current: Any, extra: Any) -> List[Any]:
    merged = _as_list(current)
    for item in _as_list(extra):
        if item not in merged:
            merged.append(item)
    return merged


def _on_key(fm: Dict[Any, Any]) -> Any:
    # YAML 1.1 reads a bare `on:` key as boolean True
    return True if True in fm else "on"


def _merge_triggers(main: Dict[str, Any], fragment: Dict[str, Any]) -> None:
    frag_on = fragment.get(_on_key(fragment))
    if not isinstance(frag_on, dict):
        return
    extra = {k: frag_on[k] for k in _ON_UNION_KEYS if k in frag_on}
    key = _on_key(main)
    if not extra or main.get(key) is None:
        return
    on = main[key]
    if not isinstance(on, dict):
        on = {event: None for event in _as_list(on)}
    else:
        on = dict(on)
    for k, v in extra.items():
        on[k] = _union(on.get(k), v)
    main[key] = on


def _merge_fragment(main: Dict[str, Any], fragment: Dict[str, Any]) -> None:
    for key in _UNION_KEYS:
        if key in fragment:
            main[key] = _union(main.get(key), fragment[key])
    _merge_triggers(main, fragment)

    for key in _MAPPING_KEYS:
        if isinstance(fragment.get(key), dict):
            combined = dict(fragment[key])
            combined.update(main.get(key) or {})
            main[key] = combined

    if isinstance(fragment.get("permissions"), dict):
        main["permissions"] = _merge_permissions(main.get("permissions"), fragment["permissions"])


_LEVEL_RANK = {"none": 0, "read": 1, "write": 2}


def _merge_permissions(main: Any, fragment: Dict[str, Any]) -> Any:
    if isinstance(main, str):
        # shorthand already covers the fragment
        return main
    out = dict(main or {})
    for scope, level in fragment.items():
        current = out.get(scope, "none")
        if _LEVEL_RANK.get(str(level), 0) > _LEVEL_RANK.get(str(current), 0):
            out[scope] = level
    return out
