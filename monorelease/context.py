"""Repository context: the git capability and the workspace package graph.

The Context is loaded once per command from the workspace root. It knows
every package in the uv workspace, which release group (if any) each belongs
to, and how to reach git. Call ``reload()`` after rewriting manifests so
subsequent reads see the new versions and ranges.
"""

from __future__ import annotations

import fnmatch
import glob
from pathlib import Path

from packaging.utils import canonicalize_name

from .deps import dep_canonical_name
from .errors import ConfigurationError, GitError, ManifestError
from .graph import topo_sort
from .models import Package, ReleaseGroupRepo, ReleaseUnit
from .shell import git, run
from .toml import (
    get_all_dependency_strings,
    get_index_url,
    get_project_name,
    get_project_version,
    get_release_group_globs,
    get_remote_partial_url,
    get_strip_prefix,
    get_workspace_member_globs,
    load_pyproject,
)


class GitRepo:
    """Thin wrapper over the git CLI for one repository."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _git(self, *args: str, check: bool = True) -> str:
        return git(*args, check=check, cwd=self.root)

    def get_current_branch_name(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def get_short_sha(self, ref: str = "HEAD") -> str:
        return self._git("rev-parse", "--short", ref)

    def get_remote(self, partial_url: str) -> str | None:
        """Return the name of the first remote whose URL contains partial_url."""
        for line in self._git("remote", "-v").splitlines():
            parts = line.split()
            if len(parts) >= 2 and partial_url in parts[1]:
                return parts[0]
        return None

    def get_sha_for_branch(self, branch: str) -> str | None:
        """Return the commit a branch points at, or None if it doesn't exist."""
        ref = branch if branch.startswith("refs/") else f"refs/heads/{branch}"
        sha = self._git("show-ref", "--hash", ref, check=False)
        return sha.splitlines()[0] if sha else None

    def is_branch_up_to_date(self, branch: str, remote: str) -> bool:
        """Fetch the branch from remote and compare local and remote tips."""
        self._git("fetch", remote, branch)
        local = self.get_sha_for_branch(branch)
        upstream = self.get_sha_for_branch(f"refs/remotes/{remote}/{branch}")
        return local is not None and local == upstream

    def fetch_tags(self) -> None:
        self._git("fetch", "--tags")

    def get_tags(self, pattern: str) -> str:
        return self._git("tag", "--list", pattern, check=False)

    def create_branch(self, name: str) -> None:
        self._git("checkout", "-b", name)

    def commit(self, message: str, error_context: str) -> None:
        """Commit all tracked changes.

        Raises:
            GitError: With error_context prepended to the message.
        """
        try:
            self._git("commit", "-a", "-m", message)
        except GitError as exc:
            raise GitError(
                f"commit ({error_context})", exc.returncode, exc.stderr
            ) from exc


class Context:
    """The workspace package graph plus the git repo it lives in."""

    def __init__(
        self,
        root: Path,
        git_repo: GitRepo,
        original_branch_name: str,
    ) -> None:
        self.root = root
        self.git_repo = git_repo
        self.original_branch_name = original_branch_name
        self.origin_remote_partial_url: str | None = None
        self.index_url = ""
        self.strip_prefix = ""
        self.full_package_map: dict[str, Package] = {}
        self.release_groups: dict[str, ReleaseGroupRepo] = {}
        self.build_order: list[str] = []
        self.reload()

    @classmethod
    def load(cls, root: Path | None = None, git_repo: GitRepo | None = None) -> Context:
        """Create a context for the workspace at root (default: cwd)."""
        root = (root or Path.cwd()).resolve()
        if not (root / "pyproject.toml").exists():
            raise ConfigurationError(f"No pyproject.toml found in {root}")
        git_repo = git_repo or GitRepo(root)
        return cls(root, git_repo, git_repo.get_current_branch_name())

    def reload(self) -> None:
        """Re-read every manifest in the workspace.

        Reads [tool.uv.workspace].members from the root pyproject.toml to find
        package directories, then extracts name, version, and internal deps
        from each package's pyproject.toml.
        """
        root_doc = load_pyproject(self.root / "pyproject.toml")
        member_globs = get_workspace_member_globs(root_doc)
        group_globs = get_release_group_globs(root_doc)
        self.origin_remote_partial_url = get_remote_partial_url(root_doc)
        self.index_url = get_index_url(root_doc)
        self.strip_prefix = get_strip_prefix(root_doc)

        member_dirs: list[Path] = []
        for pattern in member_globs:
            for match in sorted(glob.glob(str(self.root / pattern))):
                p = Path(match)
                if (p / "pyproject.toml").exists():
                    member_dirs.append(p)

        if not member_dirs:
            raise ConfigurationError("No packages found matching workspace members")

        # First pass: collect basic info from each package
        packages: dict[str, Package] = {}
        for d in member_dirs:
            doc = load_pyproject(d / "pyproject.toml")
            name = get_project_name(doc, d.name)
            rel_path = d.relative_to(self.root).as_posix()
            packages[name] = Package(
                name=name,
                path=rel_path,
                version=get_project_version(doc),
                dependencies=get_all_dependency_strings(doc),
                release_group=_match_release_group(rel_path, group_globs),
            )

        # Second pass: identify which deps are internal (within workspace)
        for info in packages.values():
            for dep_str in info.dependencies:
                dep_name = dep_canonical_name(dep_str)
                if dep_name in packages and dep_name not in info.deps:
                    info.deps.append(dep_name)

        groups: dict[str, ReleaseGroupRepo] = {}
        for group_name in group_globs:
            members = sorted(n for n, p in packages.items() if p.release_group == group_name)
            if not members:
                raise ConfigurationError(
                    f"Release group '{group_name}' matches no workspace packages"
                )
            groups[group_name] = ReleaseGroupRepo(
                name=group_name,
                members=members,
                version=packages[members[0]].version,
            )

        try:
            self.build_order = topo_sort(packages)
        except RuntimeError as exc:
            raise ManifestError(str(exc)) from exc
        self.full_package_map = packages
        self.release_groups = groups

    def is_release_group(self, name: str | None) -> bool:
        return name is not None and name in self.release_groups

    def resolve_unit(
        self, release_group: str | None = None, package: str | None = None
    ) -> ReleaseUnit:
        """Resolve command flags to exactly one release group or package.

        Raises:
            ConfigurationError: If both or neither are given, or the name is unknown.
        """
        if release_group and package:
            raise ConfigurationError(
                "--release-group and --package are mutually exclusive"
            )
        if release_group:
            if not self.is_release_group(release_group):
                raise ConfigurationError(f"Unknown release group: {release_group}")
            return ReleaseUnit(name=release_group, kind="release_group")
        if package:
            name = canonicalize_name(package)
            if name not in self.full_package_map:
                raise ConfigurationError(f"Unknown package: {package}")
            return ReleaseUnit(name=name, kind="package")
        raise ConfigurationError("Must provide a valid release group or package name.")

    def unit_packages(self, unit: ReleaseUnit) -> list[Package]:
        """The packages released as part of unit."""
        if unit.is_release_group:
            group = self.release_groups.get(unit.name)
            if group is None:
                raise ConfigurationError(f"Can't find release group in context: {unit}")
            return [self.full_package_map[n] for n in group.members]
        pkg = self.full_package_map.get(unit.name)
        if pkg is None:
            raise ConfigurationError(f"Can't find package in context: {unit}")
        return [pkg]

    def unit_version(self, unit: ReleaseUnit) -> str:
        if unit.is_release_group:
            return self.release_groups[unit.name].version
        return self.full_package_map[unit.name].version

    def packages_in_release_group(self, release_group: str) -> list[Package]:
        return [
            p for p in self.full_package_map.values() if p.release_group == release_group
        ]

    def packages_not_in_release_group(self, unit: ReleaseUnit | Package) -> list[Package]:
        """Every package outside the release group that unit belongs to.

        For a standalone package this is every other package.
        """
        if isinstance(unit, ReleaseUnit) and unit.is_release_group:
            group, own = unit.name, unit.name
        else:
            pkg = self.full_package_map[unit.name]
            group, own = pkg.release_group, pkg.name

        if group is not None:
            return [p for p in self.full_package_map.values() if p.release_group != group]
        return [p for p in self.full_package_map.values() if p.name != own]

    def create_branch(self, name: str) -> None:
        self.git_repo.create_branch(name)

    def install(self) -> bool:
        """Sync the workspace environment with uv. Returns True on success."""
        result = run("uv", "sync", "--all-packages", check=False, cwd=self.root)
        return result.returncode == 0


def _match_release_group(rel_path: str, group_globs: dict[str, list[str]]) -> str | None:
    for group_name, patterns in group_globs.items():
        if any(fnmatch.fnmatch(rel_path, p.rstrip("/")) for p in patterns):
            return group_name
    return None
