"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying pyproject.toml
files. This is important for keeping version bump diffs small and readable.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigurationError, ManifestError

DEFAULT_INDEX_URL = "https://pypi.org/pypi"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    try:
        return tomlkit.parse(path.read_text())
    except (OSError, TOMLKitError) as exc:
        raise ManifestError(f"Cannot read {path}: {exc}") from exc


def save_pyproject(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    return str(doc.get("project", {}).get("version", "0.0.0"))


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Collect all dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 dependency groups)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    """
    project = doc.get("project", {})
    deps: list[str] = [str(d) for d in project.get("dependencies", [])]
    for group_deps in project.get("optional-dependencies", {}).values():
        deps.extend(str(d) for d in group_deps)
    for group_deps in doc.get("dependency-groups", {}).values():
        # PEP 735 groups may also contain {include-group = "..."} tables
        deps.extend(str(d) for d in group_deps if isinstance(d, str))
    return deps


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    Raises:
        ConfigurationError: If no workspace members are defined.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    if not members:
        raise ConfigurationError(
            "No [tool.uv.workspace] members defined in root pyproject.toml"
        )
    return [str(m) for m in members]


def get_tool_config(doc: tomlkit.TOMLDocument) -> dict[str, Any]:
    """Return the [tool.monorelease] table as a plain dict (empty if absent)."""
    return dict(doc.get("tool", {}).get("monorelease", {}))


def get_release_group_globs(doc: tomlkit.TOMLDocument) -> dict[str, list[str]]:
    """Extract release group member globs from [tool.monorelease.release-groups].

    Example:
        [tool.monorelease.release-groups.client]
        members = ["packages/client/*"]

    Raises:
        ConfigurationError: If a release group has no members list.
    """
    groups = get_tool_config(doc).get("release-groups", {})
    result: dict[str, list[str]] = {}
    for name, table in groups.items():
        members = table.get("members") if hasattr(table, "get") else None
        if not members:
            raise ConfigurationError(f"Release group '{name}' defines no members")
        result[str(name)] = [str(m) for m in members]
    return result


def get_remote_partial_url(doc: tomlkit.TOMLDocument) -> str | None:
    """The partial remote URL used to locate the upstream git remote."""
    remote = get_tool_config(doc).get("remote")
    return str(remote) if remote else None


def get_index_url(doc: tomlkit.TOMLDocument) -> str:
    """The JSON API root of the package registry."""
    return str(get_tool_config(doc).get("index-url", DEFAULT_INDEX_URL))


def get_strip_prefix(doc: tomlkit.TOMLDocument) -> str:
    """Prefix removed from package names when building release tag names."""
    return str(get_tool_config(doc).get("strip-prefix", ""))
