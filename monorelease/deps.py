"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings, computing the
minimum version a range admits, and rewriting pyproject.toml files so
internal workspace dependencies follow a bumped version while keeping the
range style each package chose (exact pin, compatible release, floor).
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.specifiers import Specifier
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from .errors import ManifestError
from .toml import load_pyproject, save_pyproject

# Operators that put a lower bound on the admitted versions
_FLOOR_OPERATORS = ("==", "===", "~=", ">=", ">")

_ZERO = Version("0.0.0")


def parse_requirement(dep_str: str) -> Requirement:
    """Parse a PEP 508 string, raising ManifestError if it is invalid."""
    try:
        return Requirement(dep_str)
    except InvalidRequirement as exc:
        raise ManifestError(f"Invalid dependency {dep_str!r}: {exc}") from exc


def parse_pep440(version: str) -> Version:
    """Parse a PEP 440 version, raising ManifestError if it is invalid."""
    try:
        return Version(version)
    except InvalidVersion as exc:
        raise ManifestError(f"Invalid PEP 440 version {version!r}") from exc


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(parse_requirement(dep_str).name)


def min_version(dep_str: str) -> Version:
    """The lowest version a dependency's range admits.

    The greatest lower bound across the range's specifiers is used; a
    range with no lower bound admits 0.0.0. A strict ">X" is treated as X,
    which keeps the pre-release status of X.

    Examples:
        "pkg>=2.0.0-dev.1" → 2.0.0.dev1
        "pkg>=1.0,<3" → 1.0
        "pkg" → 0.0.0
    """
    req = parse_requirement(dep_str)
    floor = _ZERO
    for spec in req.specifier:
        if spec.operator not in _FLOOR_OPERATORS:
            continue
        if spec.operator == "===":
            # Arbitrary equality may name a non-PEP 440 version
            try:
                candidate = Version(spec.version)
            except InvalidVersion:
                continue
        else:
            candidate = parse_pep440(spec.version.removesuffix(".*"))
        if candidate > floor:
            floor = candidate
    return floor


def is_prerelease_range(dep_str: str) -> bool:
    """Whether the minimum version a dependency admits is a pre-release."""
    return min_version(dep_str).is_prerelease


def _floor_spec(spec: Specifier, version: Version) -> str:
    if spec.version.endswith(".*"):
        segments = len(spec.version.split(".")) - 1
        release = ".".join(str(p) for p in version.release[:segments])
        return f"{spec.operator}{release}.*"
    if spec.operator == "~=" and not version.is_prerelease and not version.is_postrelease:
        # The segment count decides which part of the version may change
        segments = len(Version(spec.version).release)
        parts = (*version.release, *([0] * segments))[:segments]
        epoch = f"{version.epoch}!" if version.epoch else ""
        return f"~={epoch}{'.'.join(str(p) for p in parts)}"
    # A strict bound on the new version would exclude it
    operator = ">=" if spec.operator == ">" else spec.operator
    return f"{operator}{version}"


def set_dependency_version(dep_str: str, version: str) -> str:
    """Point a dependency's range at a new version, preserving its style.

    The lower bound keeps its operator ("==" stays an exact pin, "~=" a
    compatible release with as many release segments, ">=" a floor).
    Upper bounds and exclusions that would reject the new version are
    dropped. Extras and markers are kept.

    Examples:
        set_dependency_version("pkg==1.0.0", "1.1.0") → "pkg==1.1.0"
        set_dependency_version("pkg[b,a]~=1.0", "2.0.0") → "pkg[a,b]~=2.0"
        set_dependency_version("pkg>=1.0,<2", "2.0.0") → "pkg>=2.0.0"
        set_dependency_version("pkg~=1.0.0", "1.1.0") → "pkg~=1.1.0"
    """
    req = parse_requirement(dep_str)
    if req.url or not req.specifier:
        return dep_str

    new_version = parse_pep440(version)
    floor: str | None = None
    bounds: list[str] = []
    dropped = False
    for spec in sorted(req.specifier, key=str):
        if spec.operator in _FLOOR_OPERATORS:
            if floor is None:
                floor = _floor_spec(spec, new_version)
        elif spec.contains(new_version, prereleases=True):
            bounds.append(str(spec))
        else:
            dropped = True

    if floor is None:
        if not dropped:
            return dep_str
        floor = f">={new_version}"

    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}{','.join([floor, *bounds])}{marker}"


def update_dependency_list(deps: list, versions: Mapping[str, str]) -> list[str]:
    """Rewrite internal dependencies in a list, modifying it in place.

    Args:
        deps: List of dependency strings (modified in place).
        versions: Map of canonical package name → version to point at.

    Returns:
        Names of the dependencies whose string changed.
    """
    changed: list[str] = []
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(str(dep_str))
        if name in versions:
            updated = set_dependency_version(str(dep_str), versions[name])
            if updated != str(dep_str):
                deps[i] = updated
                changed.append(name)
    return changed


def update_pyproject(
    doc: tomlkit.TOMLDocument,
    new_version: str | None,
    internal_dep_versions: Mapping[str, str],
) -> list[str]:
    """Update a parsed pyproject in memory.

    Internal deps are rewritten in all locations:
    - [project].dependencies
    - [project].optional-dependencies.*
    - [dependency-groups].*

    Args:
        doc: Parsed pyproject.toml document (modified in place).
        new_version: New [project].version, or None to leave it alone.
        internal_dep_versions: Map of package name → version for internal deps.

    Returns:
        Sorted names of the dependencies whose range changed.
    """
    project = cast(dict[str, Any], doc["project"])
    if new_version is not None:
        project["version"] = new_version

    changed: set[str] = set()
    if internal_dep_versions:
        deps = project.get("dependencies")
        if isinstance(deps, list):
            changed.update(update_dependency_list(deps, internal_dep_versions))

        opt_deps = project.get("optional-dependencies")
        if isinstance(opt_deps, dict):
            for group in opt_deps.values():
                if isinstance(group, list):
                    changed.update(update_dependency_list(group, internal_dep_versions))

        dep_groups = doc.get("dependency-groups")
        if isinstance(dep_groups, dict):
            for group in dep_groups.values():
                if isinstance(group, list):
                    changed.update(update_dependency_list(group, internal_dep_versions))

    return sorted(changed)


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: str | None,
    internal_dep_versions: Mapping[str, str],
) -> list[str]:
    """Load, update, and save a package's pyproject.toml.

    Uses tomlkit to preserve formatting and comments.

    Returns:
        Sorted names of the dependencies whose range changed.
    """
    doc = load_pyproject(pyproject_path)
    changed = update_pyproject(doc, new_version, internal_dep_versions)
    save_pyproject(pyproject_path, doc)
    return changed
