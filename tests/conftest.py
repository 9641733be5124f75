"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import tomlkit

from monorelease.context import Context, GitRepo
from monorelease.shell import Logger

ROOT_PYPROJECT = """\
[project]
name = "acme-monorepo"
version = "0.0.0"

[tool.uv.workspace]
members = ["packages/client/*", "packages/server/*", "libs/*"]

[tool.monorelease]
remote = "github.com/acme/monorepo"
strip-prefix = "acme-"

[tool.monorelease.release-groups.client]
members = ["packages/client/*"]

[tool.monorelease.release-groups.server]
members = ["packages/server/*"]
"""


def write_package(
    root: Path, rel_path: str, name: str, version: str, deps: list[str] | None = None
) -> Path:
    """Write a workspace member's pyproject.toml and return its path."""
    pkg_dir = root / rel_path
    pkg_dir.mkdir(parents=True, exist_ok=True)
    dep_lines = "".join(f'    "{d}",\n' for d in deps or [])
    pyproject = pkg_dir / "pyproject.toml"
    pyproject.write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\n'
        f"dependencies = [\n{dep_lines}]\n"
    )
    return pyproject


class RecordingLogger(Logger):
    """Logger that keeps messages instead of printing them."""

    def __init__(self, verbose: bool = True) -> None:
        super().__init__(verbose=verbose)
        self.messages: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.verbose_messages: list[str] = []

    def log(self, message: str = "") -> None:
        self.messages.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def verbose(self, message: str) -> None:
        if self.verbose_enabled:
            self.verbose_messages.append(message)

    @property
    def output(self) -> str:
        return "\n".join(self.messages)


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0", {include-group = "dev"}]

[tool.uv.workspace]
members = ["packages/*", "libs/*"]

[tool.monorelease]
remote = "github.com/acme/monorepo"
index-url = "https://test.pypi.org/pypi"

[tool.monorelease.release-groups.client]
members = ["packages/client/*"]
"""
    return tomlkit.parse(content)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A uv workspace with two release groups and two standalone packages.

    client (2.0.0): acme-client-core, acme-client-ui
    server (1.0.0): acme-server-api
    standalone: acme-utils (0.5.0), acme-tool (1.0.0)
    """
    (tmp_path / "pyproject.toml").write_text(ROOT_PYPROJECT)
    write_package(
        tmp_path,
        "packages/client/core",
        "acme-client-core",
        "2.0.0",
        ["acme-server-api>=1.0.0", "acme-utils>=0.5.0", "requests>=2.0"],
    )
    write_package(
        tmp_path,
        "packages/client/ui",
        "acme-client-ui",
        "2.0.0",
        ["acme-client-core==2.0.0"],
    )
    write_package(tmp_path, "packages/server/api", "acme-server-api", "1.0.0")
    write_package(tmp_path, "libs/utils", "acme-utils", "0.5.0")
    write_package(
        tmp_path, "libs/tool", "acme-tool", "1.0.0", ["acme-client-core~=2.0.0"]
    )
    return tmp_path


@pytest.fixture
def git_repo() -> MagicMock:
    """A GitRepo stand-in on a release branch with an up-to-date remote."""
    repo = MagicMock(spec=GitRepo)
    repo.get_current_branch_name.return_value = "release/client/2.0"
    repo.get_remote.return_value = "origin"
    repo.is_branch_up_to_date.return_value = True
    repo.get_sha_for_branch.return_value = None
    repo.get_short_sha.return_value = "abc1234"
    repo.get_tags.return_value = ""
    return repo


@pytest.fixture
def context(workspace: Path, git_repo: MagicMock) -> Context:
    return Context.load(workspace, git_repo=git_repo)


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()
