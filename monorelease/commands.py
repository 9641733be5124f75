"""Release and prep workflows.

A workflow is a machine definition plus the handler layers that own its
states. The generic gates live in ``checks``; the layers here own the
dependency sub-flow and the workflow-specific bump and prompt states.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

import click

from .branches import bump_branch_name, release_branch_name
from .bump import bump_release_group
from .checks import ChecksHandler
from .context import Context
from .dispatch import StateDispatcher, StateHandler
from .errors import ConfigurationError, MonoreleaseError
from .machines import PREP_MACHINE, RELEASE_MACHINE, Action, State, StateMachine
from .models import BumpResult, PreReleaseDependencies, ReleaseOptions, ReleaseUnit
from .packages import check_updates, get_pre_release_dependencies, is_released
from .registry import PyPIRegistry
from .shell import Logger
from .versions import BumpType, VersionScheme, detect_version_scheme

PREP_BRANCHES = ("main", "next", "lts")


@dataclass
class ReleaseRun:
    """State shared by the handler layers during one command invocation."""

    command: str
    context: Context
    options: ReleaseOptions
    unit: ReleaseUnit
    logger: Logger
    branch_predicate: Callable[[str], bool]
    branch_error: str
    registry: PyPIRegistry | None = None
    remote: str | None = None
    bump_branch: str | None = None
    deps_branch: str | None = None
    bump_result: BumpResult | None = None
    pending: PreReleaseDependencies = field(default_factory=PreReleaseDependencies)

    @property
    def bump_type(self) -> BumpType:
        return BumpType.PATCH if self.command == "release" else self.options.bump_type

    @property
    def version_scheme(self) -> VersionScheme:
        if self.options.version_scheme is not None:
            return self.options.version_scheme
        return detect_version_scheme(self.context.unit_version(self.unit))

    def rerun_command(self) -> str:
        flag = "-g" if self.unit.is_release_group else "-p"
        cmd = f"monorelease {self.command} {flag} {self.unit}"
        if self.command == "prep":
            return f"{cmd} -t {self.bump_type.value}"
        return f"{cmd} -S {self.version_scheme.value}"


class WorkflowHandler:
    """Owns the pre-release dependency sub-flow and the manual commit prompts."""

    def __init__(self, run: ReleaseRun) -> None:
        self.run = run

    def state_handlers(self) -> Mapping[State, StateHandler]:
        return {
            State.CHECK_NO_PRERELEASE_DEPENDENCIES: self.check_no_prerelease_dependencies,
            State.DO_BUMP_RELEASED_DEPENDENCIES: self.do_bump_released_dependencies,
            State.CHECK_NO_MORE_PRERELEASE_DEPENDENCIES: self.recheck_prerelease_dependencies,
            State.CHECK_NO_PRERELEASE_DEPENDENCIES_2: self.recheck_prerelease_dependencies,
            State.PROMPT_TO_RELEASE_DEPS: self.prompt_to_release_deps,
            State.PROMPT_TO_PR_DEPS: self.prompt_to_pr_deps,
            State.PROMPT_TO_PR_RELEASED_DEPS_BUMP: self.prompt_to_pr_deps,
            State.PROMPT_TO_COMMIT_DEPS: self.prompt_to_commit_deps,
            State.PROMPT_TO_COMMIT_RELEASED_DEPS_BUMP: self.prompt_to_commit_deps,
            State.PROMPT_TO_COMMIT_BUMP: self.prompt_to_commit_bump,
        }

    def _refresh_pending(self) -> PreReleaseDependencies:
        self.run.pending = get_pre_release_dependencies(self.run.context, self.run.unit)
        return self.run.pending

    def check_no_prerelease_dependencies(self, machine: StateMachine) -> None:
        run = self.run
        pending = self._refresh_pending()
        if pending.is_empty:
            machine.action(Action.SUCCESS)
            return

        run.logger.log(
            click.style(
                f"\nCan't release {run.unit} because some of its dependencies "
                "need to be released first.",
                fg="red",
            )
        )
        self._log_pending(pending)
        machine.action(Action.FAILURE)

    def do_bump_released_dependencies(self, machine: StateMachine) -> None:
        """Move pending dependencies to their released versions.

        Posts ``failure`` when manifests changed, ``success`` when there was
        nothing to bump.
        """
        run = self.run
        context = run.context
        names = list(run.pending.packages)
        for group in run.pending.release_groups:
            names.extend(context.release_groups[group].members)

        updated = check_updates(
            context,
            run.unit,
            names,
            "current",
            prerelease=False,
            write_changes=True,
            registry=run.registry,
            logger=run.logger,
        )
        context.reload()

        if not updated:
            run.logger.verbose("No released versions of pending dependencies found.")
            machine.action(Action.SUCCESS)
            return

        run.logger.log("Updated dependencies in:")
        for pkg in updated:
            run.logger.indent(pkg.name)
        machine.action(Action.FAILURE)

    def recheck_prerelease_dependencies(self, machine: StateMachine) -> None:
        pending = self._refresh_pending()
        if pending.is_empty:
            machine.action(Action.SUCCESS)
            return
        machine.action(Action.FAILURE)

    def _log_pending(self, pending: PreReleaseDependencies) -> None:
        logger = self.run.logger
        if pending.release_groups:
            logger.log("\nRelease these release groups:")
            for group in pending.release_groups:
                logger.indent(click.style(group, fg="bright_blue"))
        if pending.packages:
            logger.log("\nRelease these packages:")
            for name in pending.packages:
                logger.indent(click.style(name, fg="blue"))

    def prompt_to_release_deps(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(f"{run.unit} depends on pre-release versions of in-repo packages.")
        self._log_pending(run.pending)
        run.logger.log(
            "\nRelease them first, then run the following command to continue:"
        )
        run.logger.indent(run.rerun_command())

    def prompt_to_pr_deps(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(
            f"\nPlease push and create a PR for branch {run.deps_branch} targeting the "
            f"{run.context.original_branch_name} branch."
        )
        run.logger.log("\nAfter the PR is merged, run the following command to continue:")
        run.logger.indent(run.rerun_command())

    def prompt_to_commit_deps(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(
            "Commit the local changes and create a PR targeting the "
            f"{run.context.original_branch_name} branch."
        )
        run.logger.log("\nAfter the PR is merged, run the following command to continue:")
        run.logger.indent(run.rerun_command())

    def prompt_to_commit_bump(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(
            "Commit the local changes and create a PR targeting the "
            f"{run.context.original_branch_name} branch."
        )
        run.logger.log(f"\nAfter the PR is merged, then the release of {run.unit} is complete!")


def _do_bump(run: ReleaseRun, machine: StateMachine, bump_type: BumpType) -> None:
    try:
        run.bump_result = bump_release_group(
            run.context, bump_type, run.unit, run.version_scheme, run.logger
        )
    except MonoreleaseError as exc:
        run.logger.error(str(exc))
        machine.action(Action.FAILURE)
        return

    version = run.bump_result.version
    run.logger.log(
        f"Bumped {run.unit} {click.style(bump_type.value, fg='blue')} "
        f"version: {version.old} => {version.new}"
    )
    machine.action(Action.SUCCESS)


class PatchReleaseHandler:
    """Owns the states specific to a patch release."""

    def __init__(self, run: ReleaseRun) -> None:
        self.run = run

    def state_handlers(self) -> Mapping[State, StateHandler]:
        return {
            State.CHECK_IF_CURRENT_RELEASE_GROUP_IS_RELEASED: self.check_is_released,
            State.DO_RELEASE_GROUP_BUMP_PATCH: self.do_bump_patch,
            State.PROMPT_TO_PR_BUMP: self.prompt_to_pr_bump,
            State.PROMPT_TO_RELEASE: self.prompt_to_release,
        }

    def check_is_released(self, machine: StateMachine) -> None:
        run = self.run
        if is_released(run.context, run.unit, run.logger):
            machine.action(Action.SUCCESS)
            return
        machine.action(Action.FAILURE)

    def do_bump_patch(self, machine: StateMachine) -> None:
        _do_bump(self.run, machine, BumpType.PATCH)

    def prompt_to_pr_bump(self, machine: StateMachine) -> None:
        run = self.run
        run.logger.hr()
        run.logger.log(
            f"\nPlease push and create a PR for branch {run.bump_branch} targeting the "
            f"{run.context.original_branch_name} branch."
        )
        run.logger.log(f"\nAfter the PR is merged, then the release of {run.unit} is complete!")

    def prompt_to_release(self, machine: StateMachine) -> None:
        run = self.run
        branch = run.context.original_branch_name
        run.logger.hr()
        run.logger.log(
            f"Please queue a {click.style('release', fg='green')} build for the "
            f"following release group for branch {click.style(branch, fg='blue')}:"
        )
        run.logger.indent(click.style(str(run.unit), fg="green"))
        run.logger.log(
            "\nAfter the build is done and the release group has been published, run "
            "the following command to bump the release group to the next version and "
            "update dependencies on the newly released package(s):"
        )
        run.logger.indent(run.rerun_command())


class PrepReleaseHandler:
    """Owns the states specific to preparing a major or minor release."""

    def __init__(self, run: ReleaseRun) -> None:
        self.run = run
        self.release_version = run.context.unit_version(run.unit)

    def state_handlers(self) -> Mapping[State, StateHandler]:
        return {
            State.CHECK_RELEASE_BRANCH_DOES_NOT_EXIST: self.check_release_branch,
            State.CHECK_INSTALL_BUILD_TOOLS: self.check_install,
            State.DO_RELEASE_GROUP_BUMP_MINOR: self.do_bump,
            State.PROMPT_TO_PR_BUMP: self.prompt_to_pr_bump,
        }

    @property
    def release_branch(self) -> str:
        return release_branch_name(self.run.unit, self.release_version)

    def check_release_branch(self, machine: StateMachine) -> None:
        run = self.run
        if run.context.git_repo.get_sha_for_branch(self.release_branch) is not None:
            run.logger.error(f"{self.release_branch} already exists")
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def check_install(self, machine: StateMachine) -> None:
        run = self.run
        if not run.options.should_install:
            run.logger.warn("Skipping installation.")
            machine.action(Action.SUCCESS)
            return

        run.logger.log("Installing the workspace environment...")
        if not run.context.install():
            run.logger.error("Install failed.")
            machine.action(Action.FAILURE)
            return
        machine.action(Action.SUCCESS)

    def do_bump(self, machine: StateMachine) -> None:
        _do_bump(self.run, machine, self.run.bump_type)

    def prompt_to_pr_bump(self, machine: StateMachine) -> None:
        run = self.run
        bump_branch = run.bump_branch or bump_branch_name(
            run.unit, run.bump_type, self.release_version
        )
        run.logger.hr()
        run.logger.log(
            f"\n* Please push and create a PR for branch {bump_branch} targeting "
            f"{run.context.original_branch_name}."
        )
        if run.context.original_branch_name == "main":
            run.logger.log(
                f"\n* After PR is merged, create branch {self.release_branch} one commit "
                "before the merged PR and push to the repo."
            )
        run.logger.log(
            "\n* Once the release branch has been created, switch to it and use the "
            f"following command to release the {run.unit} release group:\n"
        )
        run.logger.indent(f"monorelease release -g {run.unit}")


def _release_branch_check(branch: str) -> bool:
    return branch.startswith("release/")


def _prep_branch_check(branch: str) -> bool:
    return branch in PREP_BRANCHES


def run_release(
    context: Context,
    options: ReleaseOptions,
    logger: Logger,
    registry: PyPIRegistry | None = None,
) -> State:
    """Run the patch release workflow. Returns the state it stopped in."""
    unit = context.resolve_unit(options.release_group, options.package)
    run = ReleaseRun(
        command="release",
        context=context,
        options=options,
        unit=unit,
        logger=logger,
        branch_predicate=_release_branch_check,
        branch_error=(
            "Patch release should only be done on 'release/*' branches, "
            "but current branch is '{branch}'"
        ),
        registry=registry,
    )
    machine = RELEASE_MACHINE.create()
    layers = [ChecksHandler(run), WorkflowHandler(run), PatchReleaseHandler(run)]
    return StateDispatcher(machine, layers, logger).run()


def run_prep(
    context: Context,
    options: ReleaseOptions,
    logger: Logger,
    registry: PyPIRegistry | None = None,
) -> State:
    """Run the major/minor release prep workflow. Returns the state it stopped in.

    Raises:
        ConfigurationError: If the unit is not a release group or the bump
            type is not major or minor.
    """
    unit = context.resolve_unit(options.release_group, options.package)
    if not unit.is_release_group:
        raise ConfigurationError("Release prep requires a release group.")
    if options.bump_type is BumpType.PATCH:
        raise ConfigurationError("Release prep bumps must be major or minor.")

    run = ReleaseRun(
        command="prep",
        context=context,
        options=options,
        unit=unit,
        logger=logger,
        branch_predicate=_prep_branch_check,
        branch_error=(
            "Release prep should only be done on 'main', 'next', or 'lts' branches, "
            "but current branch is '{branch}'."
        ),
        registry=registry,
    )
    machine = PREP_MACHINE.create()
    layers = [ChecksHandler(run), WorkflowHandler(run), PrepReleaseHandler(run)]
    return StateDispatcher(machine, layers, logger).run()
