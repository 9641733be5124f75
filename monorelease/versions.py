"""Version parsing, scheme detection, and bumping.

Three version schemes are supported:

- ``semver``: plain major.minor.patch.
- ``internal``: a public version with an embedded internal triple, e.g.
  ``2.0.0-internal.1.4.0``. Bumps change the internal triple only.
- ``virtualPatch``: a 0.x.y version whose fields are overloaded to carry a
  conceptual major.minor.patch. The real major lives in ``minor`` and the
  patch field holds ``real_minor * 1000 + real_patch``, e.g. 1.2.5 is
  written as ``0.1.2005``.

The scheme of a version is always detected from its shape.
"""

from __future__ import annotations

import re
from enum import Enum

import semver

from .errors import (
    InvalidVirtualPatchBaseError,
    MalformedVersionError,
    NotVirtualPatchError,
)

_INTERNAL_RE = re.compile(r"^internal\.(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")


class VersionScheme(str, Enum):
    SEMVER = "semver"
    INTERNAL = "internal"
    VIRTUAL_PATCH = "virtualPatch"


class BumpType(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


def parse_version(version_str: str | semver.Version) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-dev.1" → "1.2.3-dev.1"

    Raises:
        MalformedVersionError: If the string is not a semantic version.
    """
    if isinstance(version_str, semver.Version):
        return version_str
    try:
        return semver.Version.parse(version_str, optional_minor_and_patch=True)
    except (ValueError, TypeError) as exc:
        raise MalformedVersionError(str(version_str)) from exc


def is_virtual_patch(version: str | semver.Version) -> bool:
    """Whether a version uses the virtualPatch scheme (major 0, patch >= 1000)."""
    v = parse_version(version)
    return v.major == 0 and v.patch >= 1000


def is_internal_version(version: str | semver.Version) -> bool:
    """Whether a version carries an embedded ``internal.X.Y.Z`` prerelease."""
    v = parse_version(version)
    return v.prerelease is not None and _INTERNAL_RE.match(v.prerelease) is not None


def detect_version_scheme(version: str | semver.Version) -> VersionScheme:
    """Classify a version string by its shape."""
    if is_virtual_patch(version):
        return VersionScheme.VIRTUAL_PATCH
    if is_internal_version(version):
        return VersionScheme.INTERNAL
    return VersionScheme.SEMVER


def bump_virtual_patch_version(
    bump_type: BumpType | str, version: str | semver.Version
) -> semver.Version:
    """Bump a version using the virtualPatch rules.

    "major" maps to "minor" with "patch" = 1000 (<N + 1>.0.0 -> 0.<N + 1>.1000)
    "minor" maps to "patch" * 1000 (x.<N + 1>.0 -> 0.x.<N + 1>000)
    "patch" is unchanged (but the patch field holds minor * 1000 + patch)
    """
    v = parse_version(version)
    if v.major != 0:
        raise InvalidVirtualPatchBaseError(str(v))

    bump = BumpType(bump_type)
    if bump is BumpType.MAJOR:
        # The "minor" block starts at 1000 so it is never confused with 0
        return semver.Version(0, v.minor + 1, 1000)
    if bump is BumpType.MINOR:
        patch = v.patch + 1000
        return semver.Version(0, v.minor, patch - patch % 1000)
    return semver.Version(0, v.minor, v.patch + 1)


def to_virtual_patch_scheme(version: str | semver.Version) -> semver.Version:
    """Convert a standard semver into the virtualPatch encoding.

    A version already in virtualPatch form is returned unchanged. When the
    minor is 0 the patch block base is 1, so 1.0.5 becomes 0.1.1005.
    """
    v = parse_version(version)
    if is_virtual_patch(v):
        return v

    patch_base = 1 if v.minor == 0 else v.minor
    return semver.Version(0, v.major, patch_base * 1000 + v.patch % 1000)


def from_virtual_patch_scheme(version: str | semver.Version) -> semver.Version:
    """Convert a virtualPatch version back to standard semver."""
    v = parse_version(version)
    if not is_virtual_patch(v):
        raise NotVirtualPatchError(str(v))
    return semver.Version(v.minor, v.patch // 1000, v.patch % 1000)


def to_internal_scheme(
    public_version: str | semver.Version, internal_version: str | semver.Version
) -> semver.Version:
    """Embed an internal triple into a public version.

    Example:
        to_internal_scheme("2.0.0", "1.4.0") → 2.0.0-internal.1.4.0
    """
    public = parse_version(public_version)
    internal = parse_version(internal_version)
    return semver.Version(
        public.major,
        public.minor,
        public.patch,
        prerelease=f"internal.{internal.major}.{internal.minor}.{internal.patch}",
    )


def from_internal_scheme(
    version: str | semver.Version,
) -> tuple[semver.Version, semver.Version]:
    """Split an internal-scheme version into (public, internal) versions."""
    v = parse_version(version)
    match = _INTERNAL_RE.match(v.prerelease or "")
    if match is None:
        raise MalformedVersionError(f"{v} (not an internal version)")
    public = semver.Version(v.major, v.minor, v.patch)
    internal = semver.Version(*(int(g) for g in match.groups()))
    return public, internal


def bump_internal_version(
    version: str | semver.Version, bump_type: BumpType | str
) -> semver.Version:
    """Bump the internal triple of an internal-scheme version."""
    public, internal = from_internal_scheme(version)
    return to_internal_scheme(public, _bump_semver(internal, BumpType(bump_type)))


def bump_version_scheme(
    version: str | semver.Version,
    bump_type: BumpType | str,
    scheme: VersionScheme | str = VersionScheme.SEMVER,
) -> semver.Version:
    """Bump a version according to a version scheme.

    Virtual patch versions are always bumped with the virtualPatch rules,
    even when the requested scheme is plain semver.
    """
    bump = BumpType(bump_type)
    scheme = VersionScheme(scheme)
    v = parse_version(version)

    if scheme is VersionScheme.VIRTUAL_PATCH or is_virtual_patch(v):
        return bump_virtual_patch_version(bump, v)
    if scheme is VersionScheme.INTERNAL:
        return bump_internal_version(v, bump)
    return _bump_semver(v, bump)


def _bump_semver(version: semver.Version, bump: BumpType) -> semver.Version:
    """Standard increment; lower components reset and prerelease dropped."""
    if bump is BumpType.MAJOR:
        return version.bump_major()
    if bump is BumpType.MINOR:
        return version.bump_minor()
    return version.bump_patch()
