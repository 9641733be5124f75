"""Tests for monorelease.checks."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from conftest import RecordingLogger, write_package

from monorelease.checks import ChecksHandler, policy_problems
from monorelease.commands import ReleaseRun
from monorelease.context import Context
from monorelease.machines import Action, State
from monorelease.models import BumpResult, ReleaseOptions, ReleaseUnit, VersionBump
from monorelease.versions import BumpType, VersionScheme

CLIENT = ReleaseUnit(name="client", kind="release_group")


def _checks(
    context: Context,
    logger: RecordingLogger,
    unit: ReleaseUnit = CLIENT,
    **options: Any,
) -> ChecksHandler:
    run = ReleaseRun(
        command="release",
        context=context,
        options=ReleaseOptions(**options),
        unit=unit,
        logger=logger,
        branch_predicate=lambda branch: branch.startswith("release/"),
        branch_error="Wrong branch '{branch}'",
    )
    return ChecksHandler(run)


@pytest.fixture
def machine() -> MagicMock:
    return MagicMock()


class TestPolicyProblems:
    def test_clean_workspace(self, context: Context) -> None:
        assert policy_problems(context) == []

    def test_members_disagree(self, workspace: Path, context: Context) -> None:
        write_package(workspace, "packages/client/ui", "acme-client-ui", "2.1.0")
        context.reload()

        problems = policy_problems(context)
        assert len(problems) == 1
        assert "client" in problems[0]
        assert "acme-client-ui 2.1.0" in problems[0]

    def test_invalid_version(self, workspace: Path, context: Context) -> None:
        write_package(workspace, "libs/utils", "acme-utils", "banana")
        context.reload()

        assert policy_problems(context) == ["acme-utils has an invalid version: 'banana'"]


class TestChecksHandler:
    def test_owns_shared_gates(self, context: Context, logger: RecordingLogger) -> None:
        handlers = _checks(context, logger).state_handlers()
        assert State.CHECK_POLICY in handlers
        assert State.FAILED in handlers
        assert State.CHECK_NO_PRERELEASE_DEPENDENCIES not in handlers

    def test_init_logs_unit(
        self, context: Context, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        machine.definition.name = "Release Process"
        _checks(context, logger).init(machine)
        assert "Release Process: client" in logger.messages
        machine.action.assert_called_once_with(Action.SUCCESS)

    def test_skip_checks(
        self, context: Context, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        _checks(context, logger, skip_checks=True).check_should_run_checks(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        assert "Skipping ALL CHECKS" in logger.warnings[0]

    def test_run_checks(
        self, context: Context, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        _checks(context, logger).check_should_run_checks(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)

    @pytest.mark.parametrize(
        ("unit", "expected"),
        [
            (CLIENT, Action.SUCCESS),
            (ReleaseUnit(name="acme-utils", kind="package"), Action.SUCCESS),
            (ReleaseUnit(name="nope", kind="release_group"), Action.FAILURE),
            (ReleaseUnit(name="nope", kind="package"), Action.FAILURE),
        ],
    )
    def test_valid_release_group(
        self,
        context: Context,
        logger: RecordingLogger,
        machine: MagicMock,
        unit: ReleaseUnit,
        expected: Action,
    ) -> None:
        _checks(context, logger, unit).check_valid_release_group(machine)
        machine.action.assert_called_once_with(expected)


class TestPolicyGate:
    def test_passes(
        self, context: Context, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        _checks(context, logger).check_policy(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)

    def test_fails(
        self,
        workspace: Path,
        context: Context,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        write_package(workspace, "libs/utils", "acme-utils", "banana")
        context.reload()

        _checks(context, logger).check_policy(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        assert logger.errors == ["Policy check failed:"]
        assert "  acme-utils has an invalid version: 'banana'" in logger.messages

    def test_disabled(
        self,
        workspace: Path,
        context: Context,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        write_package(workspace, "libs/utils", "acme-utils", "banana")
        context.reload()

        _checks(context, logger, policy_check=False).check_policy(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)
        assert logger.warnings == ["Skipping policy check."]


class TestBranchNameGate:
    def test_release_branch(
        self, context: Context, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        _checks(context, logger).check_branch_name(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)

    def test_wrong_branch(
        self, workspace: Path, git_repo: MagicMock, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        git_repo.get_current_branch_name.return_value = "main"
        context = Context.load(workspace, git_repo=git_repo)

        _checks(context, logger).check_branch_name(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        assert logger.errors == ["Wrong branch 'main'"]

    def test_disabled(
        self, workspace: Path, git_repo: MagicMock, logger: RecordingLogger, machine: MagicMock
    ) -> None:
        git_repo.get_current_branch_name.return_value = "main"
        context = Context.load(workspace, git_repo=git_repo)

        _checks(context, logger, branch_check=False).check_branch_name(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)
        assert "main" in logger.warnings[0]


class TestRemoteGates:
    def test_has_remote(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        checks = _checks(context, logger)
        checks.check_has_remote(machine)

        machine.action.assert_called_once_with(Action.SUCCESS)
        git_repo.get_remote.assert_called_once_with("github.com/acme/monorepo")
        assert checks.run.remote == "origin"

    def test_no_matching_remote(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        git_repo.get_remote.return_value = None
        _checks(context, logger).check_has_remote(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        assert "github.com/acme/monorepo" in logger.errors[0]

    def test_no_remote_configured(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        context.origin_remote_partial_url = None
        _checks(context, logger).check_has_remote(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        git_repo.get_remote.assert_not_called()

    def test_up_to_date(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        checks = _checks(context, logger)
        checks.run.remote = "origin"
        checks.check_branch_up_to_date(machine)

        machine.action.assert_called_once_with(Action.SUCCESS)
        git_repo.is_branch_up_to_date.assert_called_once_with("release/client/2.0", "origin")

    def test_behind_remote(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        git_repo.is_branch_up_to_date.return_value = False
        checks = _checks(context, logger)
        checks.run.remote = "origin"
        checks.check_branch_up_to_date(machine)

        machine.action.assert_called_once_with(Action.FAILURE)
        assert "Please pull from 'origin'" in logger.errors[0]

    def test_update_check_disabled(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        _checks(context, logger, update_check=False).check_branch_up_to_date(machine)
        machine.action.assert_called_once_with(Action.SUCCESS)
        git_repo.is_branch_up_to_date.assert_not_called()


class TestCommitGates:
    def test_commit_bump(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        checks = _checks(context, logger)
        checks.run.bump_result = BumpResult(
            unit="client",
            bump_type=BumpType.PATCH,
            scheme=VersionScheme.SEMVER,
            version=VersionBump(old="2.0.0", new="2.0.1"),
        )
        checks.check_should_commit_bump(machine)

        machine.action.assert_called_once_with(Action.SUCCESS)
        assert checks.run.bump_branch == "bump_client_patch_2.0.1"
        git_repo.create_branch.assert_called_once_with("bump_client_patch_2.0.1")
        git_repo.commit.assert_called_once_with(
            "[bump] client: 2.0.0 => 2.0.1 (patch)", "Error committing"
        )

    def test_no_commit(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        _checks(context, logger, commit=False).check_should_commit_bump(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        git_repo.commit.assert_not_called()

    def test_skip_checks_disables_commit(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        _checks(context, logger, skip_checks=True).check_should_commit_deps(machine)
        machine.action.assert_called_once_with(Action.FAILURE)
        git_repo.create_branch.assert_not_called()

    def test_commit_deps(
        self,
        context: Context,
        git_repo: MagicMock,
        logger: RecordingLogger,
        machine: MagicMock,
    ) -> None:
        checks = _checks(context, logger)
        checks.check_should_commit_deps(machine)

        machine.action.assert_called_once_with(Action.SUCCESS)
        assert checks.run.deps_branch == "bump_deps_client_abc1234"
        git_repo.create_branch.assert_called_once_with("bump_deps_client_abc1234")
        git_repo.commit.assert_called_once_with(
            "[bump] client: update dependencies on released packages",
            "Error committing dependency bumps",
        )

    def test_released_deps_share_handler(
        self, context: Context, logger: RecordingLogger
    ) -> None:
        handlers = _checks(context, logger).state_handlers()
        assert (
            handlers[State.CHECK_SHOULD_COMMIT_DEPS]
            == handlers[State.CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP]
        )
