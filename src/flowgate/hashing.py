# hashing.py
"""
Stable hashes of workflow sources.

The activation job compares the hash recorded at compile time with the
source file at run time, so the lock file can be detected as stale.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def _sha256_bytes(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


def _sha256_str(s: str) -> str:
    return _sha256_bytes(s.encode("utf-8"))


def _json_dumps_stable(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def frontmatter_hash(frontmatter: Mapping[Any, Any], markdown: str = "") -> str:
    """
    Hash of the frontmatter (key order independent) plus the markdown body.

    Line endings are normalized so a checkout on another OS hashes the same.
    """
    body = markdown.replace("\r\n", "\n")
    payload = {
        "frontmatter": {str(k): v for k, v in frontmatter.items()},
        "markdown": body,
    }
    return _sha256_str(_json_dumps_stable(payload))


def stable_hash(obj: Any) -> str:
    """Hash of any JSON-serializable value, independent of dict key order."""
    return _sha256_str(_json_dumps_stable(obj))
