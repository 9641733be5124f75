"""Release queries over the workspace package graph.

Finds in-repo dependencies that are still pre-release, checks whether a
release unit has been tagged, and looks up newer published versions of
dependencies in the package registry.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Literal

from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from .context import Context
from .deps import (
    dep_canonical_name,
    is_prerelease_range,
    min_version,
    rewrite_pyproject,
    set_dependency_version,
)
from .models import Package, PreReleaseDependencies, ReleaseUnit
from .registry import PyPIRegistry
from .shell import Logger

UpdateTarget = Literal["patch", "minor", "current"]


def get_package_short_name(name: str, strip_prefix: str = "") -> str:
    """The package name used in release tags.

    Examples:
        get_package_short_name("acme-utils", "acme-") → "utils"
        get_package_short_name("other", "acme-") → "other"
    """
    if strip_prefix and name.startswith(strip_prefix):
        return name[len(strip_prefix) :]
    return name


def get_pre_release_dependencies(
    context: Context, unit: ReleaseUnit
) -> PreReleaseDependencies:
    """Find the in-repo dependencies of unit that must be released first.

    Only dependencies on packages outside unit's own release group are
    considered. A dependency is pending when the minimum version its range
    admits is a pre-release.
    """
    candidates = {p.name for p in context.packages_not_in_release_group(unit)}
    groups: set[str] = set()
    packages: set[str] = set()

    for pkg in context.unit_packages(unit):
        for dep_str in pkg.dependencies:
            name = dep_canonical_name(dep_str)
            if name not in candidates:
                continue
            if not is_prerelease_range(dep_str):
                continue

            dep_pkg = context.full_package_map[name]
            if dep_pkg.release_group is None:
                packages.add(dep_pkg.name)
            else:
                groups.add(dep_pkg.release_group)

    return PreReleaseDependencies(
        release_groups=sorted(groups), packages=sorted(packages)
    )


def release_tag_name(context: Context, unit: ReleaseUnit) -> str:
    """The git tag a release of unit at its current version is published under."""
    version = context.unit_version(unit)
    if unit.is_release_group:
        return f"{unit.name.lower()}_v{version}"
    return f"{get_package_short_name(unit.name, context.strip_prefix)}_v{version}"


def is_released(context: Context, unit: ReleaseUnit, logger: Logger | None = None) -> bool:
    """Whether unit has been tagged as released at its current version."""
    if "_v" in unit.name and logger is not None:
        logger.warn(
            f"'{unit.name}' contains '_v'; its release tags may be confused "
            "with those of another package."
        )

    context.git_repo.fetch_tags()
    tag_name = release_tag_name(context, unit)
    raw_tag = context.git_repo.get_tags(tag_name)
    return raw_tag.strip() == tag_name


def _matches(name: str, filters: Sequence[str | re.Pattern[str]]) -> bool:
    for f in filters:
        if isinstance(f, re.Pattern):
            if f.search(name):
                return True
        elif canonicalize_name(f) == name:
            return True
    return False


def _published_versions(registry: PyPIRegistry, name: str) -> list[Version]:
    versions = []
    for raw in registry.get_versions(name):
        try:
            versions.append(Version(raw))
        except InvalidVersion:
            continue
    return versions


def best_candidate(
    current: Version,
    published: Iterable[Version],
    target: UpdateTarget,
    prerelease: bool = False,
) -> Version | None:
    """The newest published version eligible under target.

    ``patch`` keeps major and minor, ``minor`` keeps major, and ``current``
    allows any version. Pre-releases are only eligible when prerelease is set.
    """
    eligible = []
    for v in published:
        if v.is_prerelease and not prerelease:
            continue
        if target == "patch" and v.release[:2] != current.release[:2]:
            continue
        if target == "minor" and v.major != current.major:
            continue
        eligible.append(v)
    return max(eligible, default=None)


def check_updates(
    context: Context,
    unit: ReleaseUnit,
    deps_to_update: Sequence[str | re.Pattern[str]],
    target: UpdateTarget,
    prerelease: bool = False,
    write_changes: bool = False,
    registry: PyPIRegistry | None = None,
    logger: Logger | None = None,
) -> list[Package]:
    """Check the registry for newer versions of unit's dependencies.

    Args:
        context: The workspace context.
        unit: The release group or package whose manifests are checked.
        deps_to_update: Dependency names or compiled patterns to check.
        target: How far a dependency may move (see ``best_candidate``).
        prerelease: Whether pre-release versions are eligible.
        write_changes: Rewrite manifests in place. Otherwise only report.
        registry: Registry client. Defaults to the workspace's index URL.
        logger: Receives progress output.

    Returns:
        Packages with at least one dependency that was (or would be) updated.
    """
    registry = registry or PyPIRegistry(context.index_url)
    if logger:
        logger.log("Checking the package registry for updates...")

    published: dict[str, list[Version]] = {}
    upgrades: list[Package] = []

    for pkg in context.unit_packages(unit):
        new_versions: dict[str, str] = {}
        for dep_str in pkg.dependencies:
            name = dep_canonical_name(dep_str)
            if not _matches(name, deps_to_update) or name in new_versions:
                continue
            if name not in published:
                published[name] = _published_versions(registry, name)

            current = min_version(dep_str)
            candidate = best_candidate(current, published[name], target, prerelease)
            if candidate is None or candidate <= current:
                continue
            if set_dependency_version(dep_str, str(candidate)) == dep_str:
                continue
            new_versions[name] = str(candidate)
            if logger:
                logger.verbose(f"{pkg.name}: {name} -> {candidate}")

        if not new_versions:
            continue
        upgrades.append(pkg)
        if write_changes:
            rewrite_pyproject(context.root / pkg.path / "pyproject.toml", None, new_versions)

    return upgrades
