"""Exception types raised by monorelease.

Configuration and version errors are raised before the state loop starts.
Predicate failures inside the loop are not exceptions - they are posted as
``failure`` actions and routed by the machine graph.
"""

from __future__ import annotations


class MonoreleaseError(Exception):
    """Base class for all errors reported to the user."""


class MalformedVersionError(MonoreleaseError, ValueError):
    """A version string could not be parsed."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Malformed version: {version!r}")
        self.version = version


class InvalidVirtualPatchBaseError(MonoreleaseError, ValueError):
    """A virtual patch bump was requested on a version whose major is not 0."""

    def __init__(self, version: str) -> None:
        super().__init__(
            f"Can only use virtual patches with major version 0, got {version}"
        )
        self.version = version


class NotVirtualPatchError(MonoreleaseError, ValueError):
    """A version was expected to use the virtualPatch scheme but does not."""

    def __init__(self, version: str) -> None:
        super().__init__(f"Version is not using the virtualPatch scheme: {version}")
        self.version = version


class ConfigurationError(MonoreleaseError):
    """Invalid command configuration (unknown release group, bad flags, ...)."""


class ManifestError(MonoreleaseError):
    """A pyproject.toml could not be read, parsed, or rewritten."""


class GitError(MonoreleaseError):
    """A git command exited non-zero."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"git {command} failed with exit code {returncode}{detail}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class RegistryError(MonoreleaseError):
    """The package registry could not be queried."""


class InvalidTransitionError(MonoreleaseError):
    """An action was posted in a state that has no transition for it."""

    def __init__(self, state: str, action: str) -> None:
        super().__init__(f"No transition from {state} on action '{action}'")
        self.state = state
        self.action = action


class HandlerProtocolError(MonoreleaseError):
    """A state handler did not post exactly one action."""


class UnhandledStateError(MonoreleaseError, RuntimeError):
    """No handler layer recognizes a state of the machine."""

    def __init__(self, *states: str) -> None:
        label = "state" if len(states) == 1 else "states"
        super().__init__(f"Unhandled {label}: {', '.join(states)}")
        self.states = states


class StateHandlerConflictError(AssertionError):
    """More than one handler layer claims the same state."""

    def __init__(self, state: str) -> None:
        super().__init__(f"State handled in multiple places: {state}")
        self.state = state
