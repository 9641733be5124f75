"""Shell, git, and console output utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus the Logger passed to everything that reports
progress to the user.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

import click

from .errors import GitError


def git(*args: str, check: bool = True, cwd: Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        check: If True (default), raise GitError on non-zero exit. Set to
               False for commands that may legitimately fail (e.g., ref lookup).
        cwd: Directory to run git in. Defaults to the current directory.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], capture_output=True, text=True, cwd=cwd, check=False
    )
    if check and result.returncode != 0:
        raise GitError(" ".join(args), result.returncode, result.stderr)
    return result.stdout.strip()


def run(
    *args: str, check: bool = True, cwd: Path | None = None
) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary shell command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can see install progress, etc.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(args, check=check, cwd=cwd)


class Logger:
    """Console logger handed to the state loop and release operations.

    Warnings and errors are colored; verbose messages are only shown when
    the logger was created with ``verbose=True``.
    """

    def __init__(self, verbose: bool = False) -> None:
        self.verbose_enabled = verbose

    def log(self, message: str = "") -> None:
        click.echo(message)

    def warn(self, message: str) -> None:
        click.echo(click.style(f"WARNING: {message}", fg="yellow"))

    def error(self, message: str) -> None:
        click.echo(click.style(f"ERROR: {message}", fg="red"), err=True)

    def verbose(self, message: str) -> None:
        if self.verbose_enabled:
            click.echo(click.style(f"VERBOSE: {message}", fg="bright_black"))

    def hr(self) -> None:
        """Output a horizontal rule."""
        self.log("=" * 72)

    def indent(self, message: str, indent: int = 2) -> None:
        self.log(f"{' ' * indent}{message}")
