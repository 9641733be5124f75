"""CLI entry point for monorelease."""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from monorelease.commands import run_prep, run_release
from monorelease.context import Context
from monorelease.errors import MonoreleaseError
from monorelease.machines import (
    ACTION_DESCRIPTIONS,
    MACHINES,
    STATE_DESCRIPTIONS,
    State,
)
from monorelease.models import ReleaseOptions
from monorelease.packages import get_pre_release_dependencies
from monorelease.shell import Logger
from monorelease.versions import (
    BumpType,
    VersionScheme,
    bump_version_scheme,
    detect_version_scheme,
)

_SCHEMES = [s.value for s in VersionScheme]


def common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add --verbose and --root, and report MonoreleaseError as a click error."""

    @click.option("-v", "--verbose", is_flag=True, help="Show verbose output.")
    @click.option(
        "--root",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        default=None,
        help="Workspace root. Defaults to the current directory.",
    )
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except MonoreleaseError as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def check_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """The switches shared by the release and prep commands."""
    switches = [
        click.option("--skip-checks", is_flag=True, help="Skip all checks."),
        click.option(
            "--policy-check/--no-policy-check", default=True, help="Check repo policy."
        ),
        click.option(
            "--branch-check/--no-branch-check",
            default=True,
            help="Check that the current branch is the expected one.",
        ),
        click.option(
            "--update-check/--no-update-check",
            default=True,
            help="Check that the branch is up to date with the remote.",
        ),
        click.option(
            "--commit/--no-commit", default=True, help="Commit changes to a new branch."
        ),
        click.option(
            "--install/--no-install", default=True, help="Install the workspace first."
        ),
    ]
    for option in reversed(switches):
        func = option(func)
    return func


def _finish(final_state: State) -> None:
    if final_state is State.FAILED:
        sys.exit(1)


@click.group()
@click.version_option()
def cli() -> None:
    """Release orchestration for uv workspace monorepos."""


@cli.command()
@click.option("-g", "--release-group", default=None, help="Release group to release.")
@click.option("-p", "--package", default=None, help="Standalone package to release.")
@click.option(
    "-t",
    "--bump-type",
    type=click.Choice([b.value for b in BumpType]),
    default=BumpType.PATCH.value,
    show_default=True,
    help="Version bump type.",
)
@click.option(
    "-S",
    "--version-scheme",
    type=click.Choice(_SCHEMES),
    default=None,
    help="Version scheme. Detected from the current version if omitted.",
)
@check_options
@common_options
def release(
    release_group: str | None,
    package: str | None,
    bump_type: str,
    version_scheme: str | None,
    verbose: bool,
    root: Path | None,
    **flags: bool,
) -> None:
    """Release a release group or package, then bump it to the next patch."""
    if release_group and package:
        raise click.UsageError("--release-group and --package are mutually exclusive.")

    logger = Logger(verbose=verbose)
    context = Context.load(root)
    options = ReleaseOptions(
        release_group=release_group,
        package=package,
        bump_type=BumpType(bump_type),
        version_scheme=VersionScheme(version_scheme) if version_scheme else None,
        **flags,
    )
    _finish(run_release(context, options, logger))


@cli.command()
@click.option("-g", "--release-group", required=True, help="Release group to prepare.")
@click.option(
    "-t",
    "--bump-type",
    type=click.Choice([BumpType.MAJOR.value, BumpType.MINOR.value]),
    default=BumpType.MINOR.value,
    show_default=True,
    help="Version bump type.",
)
@click.option(
    "-S",
    "--version-scheme",
    type=click.Choice(_SCHEMES),
    default=None,
    help="Version scheme. Detected from the current version if omitted.",
)
@check_options
@common_options
def prep(
    release_group: str,
    bump_type: str,
    version_scheme: str | None,
    verbose: bool,
    root: Path | None,
    **flags: bool,
) -> None:
    """Bump a release group to its next major or minor version before a release."""
    logger = Logger(verbose=verbose)
    context = Context.load(root)
    options = ReleaseOptions(
        release_group=release_group,
        bump_type=BumpType(bump_type),
        version_scheme=VersionScheme(version_scheme) if version_scheme else None,
        **flags,
    )
    _finish(run_prep(context, options, logger))


@cli.command()
@click.option("-g", "--release-group", default=None, help="Release group to check.")
@click.option("-p", "--package", default=None, help="Standalone package to check.")
@common_options
def deps(
    release_group: str | None, package: str | None, verbose: bool, root: Path | None
) -> None:
    """List in-repo dependencies that must be released first."""
    logger = Logger(verbose=verbose)
    context = Context.load(root)
    unit = context.resolve_unit(release_group, package)
    pending = get_pre_release_dependencies(context, unit)
    if pending.is_empty:
        logger.log(f"{unit} has no pre-release dependencies.")
        return

    for group in pending.release_groups:
        logger.log(f"release group: {group}")
    for name in pending.packages:
        logger.log(f"package: {name}")
    sys.exit(1)


@cli.command()
@click.argument("name", type=click.Choice(sorted(MACHINES)), required=False)
def machines(name: str | None) -> None:
    """Show the states and transitions of the release machines."""
    logger = Logger()
    selected = [MACHINES[name]] if name else list(MACHINES.values())
    for definition in selected:
        logger.hr()
        logger.log(click.style(definition.name, bold=True))
        logger.hr()
        for state in sorted(definition.reachable_states(), key=str):
            marker = " (terminal)" if definition.is_terminal(state) else ""
            logger.log(f"{state}{marker}: {STATE_DESCRIPTIONS[state]}")
            for action, target in definition.transitions.get(state, {}).items():
                logger.indent(f"{action} ==> {target}")
        logger.log()

    logger.log("Actions:")
    for action, description in ACTION_DESCRIPTIONS.items():
        logger.indent(f"{action}: {description}")


@cli.command()
@click.argument("version_str", metavar="VERSION")
@click.option(
    "-t",
    "--bump-type",
    type=click.Choice([b.value for b in BumpType]),
    default=BumpType.PATCH.value,
    show_default=True,
)
@click.option("-S", "--version-scheme", type=click.Choice(_SCHEMES), default=None)
@common_options
def version(
    version_str: str,
    bump_type: str,
    version_scheme: str | None,
    verbose: bool,
    root: Path | None,
) -> None:
    """Show the detected scheme of VERSION and its bumped version."""
    scheme = VersionScheme(version_scheme) if version_scheme else detect_version_scheme(
        version_str
    )
    bumped = bump_version_scheme(version_str, bump_type, scheme)
    click.echo(f"scheme: {scheme.value}")
    click.echo(f"{bump_type}: {bumped}")
