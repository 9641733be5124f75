"""Git branch naming for bumps and release lines."""

from __future__ import annotations

from .context import Context
from .models import ReleaseUnit
from .versions import (
    BumpType,
    VersionScheme,
    bump_version_scheme,
    detect_version_scheme,
    from_internal_scheme,
    parse_version,
)

# Release groups whose release branches predate the current group names
LEGACY_BRANCH_ALIASES = {"client": "v2int"}


def bump_branch_name(unit: ReleaseUnit | str, bump_type: BumpType | str, version: str) -> str:
    """Generate a consistent branch name from a unit, bump type, and version.

    Example:
        bump_branch_name("Client", "minor", "1.2.3") → "bump_client_minor_1.3.0"
    """
    bump = BumpType(bump_type)
    new_version = bump_version_scheme(version, bump, detect_version_scheme(version))
    return f"bump_{str(unit).lower()}_{bump.value}_{new_version}"


def release_branch_name(unit: ReleaseUnit | str, version: str) -> str:
    """The release line branch for a unit at a version.

    Virtual patch versions use the full version; everything else uses
    major.minor, taken from the internal triple for internal versions.

    Examples:
        release_branch_name("server", "1.2.3") → "release/server/1.2"
        release_branch_name("client", "2.0.0-internal.1.4.0") → "release/v2int/1.4"
        release_branch_name("azure", "0.1.2005") → "release/azure/0.1.2005"
    """
    scheme = detect_version_scheme(version)
    if scheme is VersionScheme.VIRTUAL_PATCH:
        branch_version = str(parse_version(version))
    else:
        v = parse_version(version)
        if scheme is VersionScheme.INTERNAL:
            _, v = from_internal_scheme(v)
        branch_version = f"{v.major}.{v.minor}"

    name = LEGACY_BRANCH_ALIASES.get(str(unit), str(unit))
    return f"release/{name}/{branch_version}"


def deps_branch_name(unit: ReleaseUnit | str, sha: str) -> str:
    """The branch dependency bumps are committed on."""
    return f"bump_deps_{str(unit).lower()}_{sha}"


def create_bump_branch(
    context: Context,
    unit: ReleaseUnit,
    bump_type: BumpType | str,
    version: str | None = None,
) -> str:
    """Create and check out the branch for a unit bump. Does not commit.

    The branch is named after the bump from version, which defaults to the
    unit's current version.

    Returns:
        The name of the new branch.
    """
    name = bump_branch_name(unit, bump_type, version or context.unit_version(unit))
    context.create_branch(name)
    return name
