"""TOML read/write helpers shared by manifests, lock files and bundles."""

from __future__ import annotations

from typing import Any, Dict

try:
    import tomllib as toml  # type: ignore
except ImportError:  # Python < 3.11
    import tomli as toml  # type: ignore

import tomli_w

TOMLDecodeError = toml.TOMLDecodeError


def loads(content: str) -> Dict[str, Any]:
    """Parse TOML text; raises TOMLDecodeError on invalid syntax."""
    return toml.loads(content)


def dumps(data: Dict[str, Any]) -> str:
    """Serialize a mapping to TOML text."""
    return tomli_w.dumps(data)
