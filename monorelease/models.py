"""Data models for monorelease.

These Pydantic models represent the workspace graph and the results of
release operations.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .versions import BumpType, VersionScheme


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Canonical (PEP 503) package name.
        path: Relative path from workspace root to the package directory.
        version: Current version string from pyproject.toml.
        dependencies: Raw PEP 508 strings from all dependency tables.
        deps: Names of internal (workspace) dependencies.
        release_group: Name of the owning release group, if any.
    """

    name: str
    path: str
    version: str
    dependencies: list[str] = Field(default_factory=list)
    deps: list[str] = Field(default_factory=list)
    release_group: str | None = None


class ReleaseGroupRepo(BaseModel):
    """A set of packages versioned and released together.

    Attributes:
        name: Release group name from [tool.monorelease.release-groups].
        members: Canonical names of the member packages.
        version: The group version (the version of its first member).
    """

    name: str
    members: list[str] = Field(default_factory=list)
    version: str = "0.0.0"


class ReleaseUnit(BaseModel):
    """The release group or standalone package a command operates on."""

    name: str
    kind: Literal["release_group", "package"]

    @property
    def is_release_group(self) -> bool:
        return self.kind == "release_group"

    def __str__(self) -> str:
        return self.name


class VersionBump(BaseModel):
    """Records a version change for a package or release group.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class BumpResult(BaseModel):
    """The manifests rewritten by a release group bump.

    Attributes:
        unit: Name of the bumped release group or package.
        bump_type: The kind of bump applied.
        scheme: Version scheme used for the arithmetic.
        version: Old and new unit version.
        bumped_packages: Packages whose own version changed.
        updated_dependents: Package name → dependencies whose range was rewritten.
    """

    unit: str
    bump_type: BumpType
    scheme: VersionScheme
    version: VersionBump
    bumped_packages: list[str] = Field(default_factory=list)
    updated_dependents: dict[str, list[str]] = Field(default_factory=dict)


class PreReleaseDependencies(BaseModel):
    """In-repo dependencies of a release unit that are still pre-release.

    Recompute after any bump; the report is stale once a manifest changes.
    """

    release_groups: list[str] = Field(default_factory=list)
    packages: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.release_groups and not self.packages


class ReleaseOptions(BaseModel):
    """Flags a release or prep command was invoked with.

    Each ``should_*`` property is its flag combined with ``skip_checks``,
    which overrides all of them.
    """

    release_group: str | None = None
    package: str | None = None
    bump_type: BumpType = BumpType.PATCH
    version_scheme: VersionScheme | None = None
    skip_checks: bool = False
    policy_check: bool = True
    branch_check: bool = True
    update_check: bool = True
    commit: bool = True
    install: bool = True

    @property
    def should_check_policy(self) -> bool:
        return self.policy_check and not self.skip_checks

    @property
    def should_check_branch(self) -> bool:
        return self.branch_check and not self.skip_checks

    @property
    def should_check_branch_update(self) -> bool:
        return self.update_check and not self.skip_checks

    @property
    def should_commit(self) -> bool:
        return self.commit and not self.skip_checks

    @property
    def should_install(self) -> bool:
        return self.install and not self.skip_checks
