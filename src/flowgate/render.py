# render.py
"""Pipeline YAML output. Same input, same bytes."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import yaml

if TYPE_CHECKING:
    from .compiler import CompiledWorkflow

LOCK_SUFFIX = ".lock.yml"


class _Dumper(yaml.SafeDumper):
    pass


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


def _none_representer(dumper: yaml.SafeDumper, _data: None) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


_Dumper.add_representer(str, _str_representer)
_Dumper.add_representer(type(None), _none_representer)


def dump_yaml(data: Any) -> str:
    return yaml.dump(
        data,
        Dumper=_Dumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=10_000,
    )


def workflow_document(compiled: "CompiledWorkflow") -> Dict[str, Any]:
    spec = compiled.spec
    return {
        "name": spec.name,
        "on": spec.rendered_triggers(),
        "permissions": {},
        "jobs": compiled.graph.to_dict(),
    }


def header(compiled: "CompiledWorkflow") -> str:
    source = compiled.spec.source_path or compiled.spec.name
    return (
        f"# Generated by flowgate from {Path(source).name}. Do not edit by hand.\n"
        f"# source-hash: {compiled.source_hash}\n"
    )


def render_workflow(compiled: "CompiledWorkflow") -> str:
    return header(compiled) + "\n" + dump_yaml(workflow_document(compiled))


def lock_path_for(source: Path, output_dir: Optional[Path] = None) -> Path:
    name = source.name[: -len(".md")] if source.name.endswith(".md") else source.stem
    return (output_dir or source.parent) / f"{name}{LOCK_SUFFIX}"


def write_lock_file(compiled: "CompiledWorkflow", path: Path) -> bool:
    """Write the rendered workflow. Returns False when the file was already current."""
    text = render_workflow(compiled)
    if path.exists() and path.read_text(encoding="utf-8") == text:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)
    return True
