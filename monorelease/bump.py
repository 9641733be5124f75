"""Release group version bumps across the workspace manifests."""

from __future__ import annotations

from pathlib import Path

import tomlkit

from .context import Context
from .deps import update_pyproject
from .errors import ManifestError
from .graph import dependents_of
from .models import BumpResult, ReleaseUnit, VersionBump
from .shell import Logger
from .toml import load_pyproject, save_pyproject
from .versions import BumpType, VersionScheme, bump_version_scheme


def bump_release_group(
    context: Context,
    bump_type: BumpType | str,
    unit: ReleaseUnit,
    scheme: VersionScheme | str = VersionScheme.SEMVER,
    logger: Logger | None = None,
) -> BumpResult:
    """Bump a release group (or standalone package) and its dependents.

    Every member's [project].version is set to the new version, and every
    workspace package that depends on a member has that range rewritten
    to point at the new version. All manifests are staged in memory before
    any is written. The context is reloaded afterwards, including when a
    write fails.

    Raises:
        ManifestError: If a manifest can't be read, staged, or written.
    """
    bump = BumpType(bump_type)
    scheme = VersionScheme(scheme)
    old_version = context.unit_version(unit)
    new_version = str(bump_version_scheme(old_version, bump, scheme))

    members = {p.name for p in context.unit_packages(unit)}
    dep_versions = {name: new_version for name in members}
    dependents = set(dependents_of(context.full_package_map, members))

    staged: dict[Path, tomlkit.TOMLDocument] = {}
    bumped: list[str] = []
    updated: dict[str, list[str]] = {}
    for name in context.build_order:
        pkg = context.full_package_map[name]
        is_member = name in members
        if not is_member and name not in dependents:
            continue

        path = context.root / pkg.path / "pyproject.toml"
        doc = load_pyproject(path)
        changed = update_pyproject(doc, new_version if is_member else None, dep_versions)
        staged[path] = doc
        if is_member:
            bumped.append(name)
        if changed:
            updated[name] = changed

    if logger:
        logger.verbose(f"Bumping {unit} from {old_version} to {new_version} ({bump.value})")

    try:
        for path, doc in staged.items():
            save_pyproject(path, doc)
    except OSError as exc:
        context.reload()
        raise ManifestError(f"Failed to write {path}: {exc}") from exc

    context.reload()

    if logger:
        for name in bumped:
            logger.verbose(f"  {name}: {old_version} => {new_version}")
        for name, deps in updated.items():
            logger.verbose(f"  {name}: updated {', '.join(deps)}")

    return BumpResult(
        unit=unit.name,
        bump_type=bump,
        scheme=scheme,
        version=VersionBump(old=old_version, new=new_version),
        bumped_packages=sorted(bumped),
        updated_dependents=updated,
    )
