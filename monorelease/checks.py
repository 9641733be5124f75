"""The generic checks layer shared by the release and prep workflows.

Each ``Check*`` gate posts ``success`` when its predicate holds. A gate
whose ``should_*`` option is off is skipped: it logs a warning and posts
``success``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from .branches import create_bump_branch, deps_branch_name
from .context import Context
from .dispatch import StateHandler
from .errors import MalformedVersionError
from .machines import Action, State, StateMachine
from .versions import parse_version

if TYPE_CHECKING:
    from .commands import ReleaseRun


def policy_problems(context: Context) -> list[str]:
    """Repo policy violations that block a release.

    Every member of a release group must carry the same version, and every
    package version must be a parsable semantic version.
    """
    problems: list[str] = []
    for pkg in context.full_package_map.values():
        try:
            parse_version(pkg.version)
        except MalformedVersionError:
            problems.append(f"{pkg.name} has an invalid version: {pkg.version!r}")

    for group in context.release_groups.values():
        versions = {n: context.full_package_map[n].version for n in group.members}
        if len(set(versions.values())) > 1:
            listed = ", ".join(f"{n} {v}" for n, v in versions.items())
            problems.append(
                f"Release group '{group.name}' members disagree on version: {listed}"
            )
    return problems


class ChecksHandler:
    """Handles the cross-cutting gates of every release workflow."""

    def __init__(self, run: ReleaseRun) -> None:
        self.run = run

    def state_handlers(self) -> Mapping[State, StateHandler]:
        return {
            State.INIT: self.init,
            State.FAILED: self.failed,
            State.CHECK_SHOULD_RUN_CHECKS: self.check_should_run_checks,
            State.CHECK_VALID_RELEASE_GROUP: self.check_valid_release_group,
            State.CHECK_POLICY: self.check_policy,
            State.CHECK_BRANCH_NAME: self.check_branch_name,
            State.CHECK_HAS_REMOTE: self.check_has_remote,
            State.CHECK_BRANCH_UP_TO_DATE: self.check_branch_up_to_date,
            State.CHECK_SHOULD_COMMIT_BUMP: self.check_should_commit_bump,
            State.CHECK_SHOULD_COMMIT_DEPS: self.check_should_commit_deps,
            State.CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP: self.check_should_commit_deps,
        }

    def init(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(f"{machine.definition.name}: {run.unit}")
        run.logger.hr()
        machine.action(Action.SUCCESS)

    def failed(self, machine: StateMachine) -> None:
        self.run.logger.verbose("Failed state!")

    def check_should_run_checks(self, machine: StateMachine) -> None:
        if self.run.options.skip_checks:
            self.run.logger.warn("Skipping ALL CHECKS! Be sure you know what you are doing!")
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_valid_release_group(self, machine: StateMachine) -> None:
        context, unit = self.run.context, self.run.unit
        if unit.is_release_group:
            valid = context.is_release_group(unit.name)
        else:
            valid = unit.name in context.full_package_map
        if not valid:
            self.run.logger.error(f"Not a release group or package: {unit}")
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_policy(self, machine: StateMachine) -> None:
        run = self.run
        if not run.options.should_check_policy:
            run.logger.warn("Skipping policy check.")
            machine.action(Action.SUCCESS)
            return

        problems = policy_problems(run.context)
        if problems:
            run.logger.error("Policy check failed:")
            for problem in problems:
                run.logger.indent(problem)
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_branch_name(self, machine: StateMachine) -> None:
        run = self.run
        branch = run.context.original_branch_name
        if not run.options.should_check_branch:
            run.logger.warn(f"Not checking if current branch is a release branch: {branch}")
            machine.action(Action.SUCCESS)
            return

        run.logger.verbose(f"Checking branch name: {branch}")
        if not run.branch_predicate(branch):
            run.logger.error(run.branch_error.format(branch=branch))
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_has_remote(self, machine: StateMachine) -> None:
        run = self.run
        partial_url = run.context.origin_remote_partial_url
        if partial_url is None:
            run.logger.error("No remote configured. Set [tool.monorelease].remote.")
            machine.action(Action.FAILURE)
            return

        run.remote = run.context.git_repo.get_remote(partial_url)
        if run.remote is None:
            run.logger.error(f"Unable to find remote for '{partial_url}'")
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_branch_up_to_date(self, machine: StateMachine) -> None:
        run = self.run
        if not run.options.should_check_branch_update:
            run.logger.warn("Not checking if the branch is up-to-date with the remote.")
            machine.action(Action.SUCCESS)
            return

        branch = run.context.original_branch_name
        if run.remote is None or not run.context.git_repo.is_branch_up_to_date(
            branch, run.remote
        ):
            run.logger.error(
                f"Local '{branch}' branch not up to date with remote. "
                f"Please pull from '{run.remote}'."
            )
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_should_commit_bump(self, machine: StateMachine) -> None:
        run = self.run
        if not run.options.should_commit:
            machine.action(Action.FAILURE)
            return

        result = run.bump_result
        old = result.version.old if result else run.context.unit_version(run.unit)
        new = result.version.new if result else old
        run.bump_branch = create_bump_branch(run.context, run.unit, run.bump_type, old)
        run.logger.verbose(f"Created bump branch: {run.bump_branch}")
        run.context.git_repo.commit(
            f"[bump] {run.unit}: {old} => {new} ({run.bump_type.value})",
            "Error committing",
        )
        machine.action(Action.SUCCESS)

    def check_should_commit_deps(self, machine: StateMachine) -> None:
        run = self.run
        if not run.options.should_commit:
            machine.action(Action.FAILURE)
            return

        git_repo = run.context.git_repo
        run.deps_branch = deps_branch_name(run.unit, git_repo.get_short_sha())
        run.context.create_branch(run.deps_branch)
        run.logger.verbose(f"Created dependency bump branch: {run.deps_branch}")
        git_repo.commit(
            f"[bump] {run.unit}: update dependencies on released packages",
            "Error committing dependency bumps",
        )
        machine.action(Action.SUCCESS)
