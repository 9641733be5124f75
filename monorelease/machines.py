"""Release state machines.

A machine is a declarative graph of named states and labeled transitions.
States follow a naming convention:

- ``Check*`` states are boolean gates that post ``success`` or ``failure``.
- ``Do*`` states perform a mutating action and post ``success`` if it
  completed.
- ``PromptTo*`` states hand control back to a human with instructions.

States without outgoing transitions are terminal. Two graphs are defined:
``RELEASE_MACHINE`` for patch releases, and ``PREP_MACHINE`` for the
pre-bump to a new major or minor before a release branch is cut.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import InvalidTransitionError


class State(str, Enum):
    INIT = "Init"
    FAILED = "Failed"
    CHECK_SHOULD_RUN_CHECKS = "CheckShouldRunChecks"
    CHECK_VALID_RELEASE_GROUP = "CheckValidReleaseGroup"
    CHECK_POLICY = "CheckPolicy"
    CHECK_BRANCH_NAME = "CheckBranchName"
    CHECK_HAS_REMOTE = "CheckHasRemote"
    CHECK_BRANCH_UP_TO_DATE = "CheckBranchUpToDate"
    CHECK_NO_PRERELEASE_DEPENDENCIES = "CheckNoPrereleaseDependencies"
    CHECK_NO_PRERELEASE_DEPENDENCIES_2 = "CheckNoPrereleaseDependencies2"
    CHECK_NO_MORE_PRERELEASE_DEPENDENCIES = "CheckNoMorePrereleaseDependencies"
    CHECK_IF_CURRENT_RELEASE_GROUP_IS_RELEASED = "CheckIfCurrentReleaseGroupIsReleased"
    CHECK_RELEASE_BRANCH_DOES_NOT_EXIST = "CheckReleaseBranchDoesNotExist"
    CHECK_INSTALL_BUILD_TOOLS = "CheckInstallBuildTools"
    CHECK_SHOULD_COMMIT_BUMP = "CheckShouldCommitBump"
    CHECK_SHOULD_COMMIT_DEPS = "CheckShouldCommitDeps"
    CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP = "CheckShouldCommitReleasedDepsBump"
    DO_RELEASE_GROUP_BUMP_PATCH = "DoReleaseGroupBumpPatch"
    DO_RELEASE_GROUP_BUMP_MINOR = "DoReleaseGroupBumpMinor"
    DO_BUMP_RELEASED_DEPENDENCIES = "DoBumpReleasedDependencies"
    PROMPT_TO_PR_BUMP = "PromptToPRBump"
    PROMPT_TO_PR_DEPS = "PromptToPRDeps"
    PROMPT_TO_PR_RELEASED_DEPS_BUMP = "PromptToPRReleasedDepsBump"
    PROMPT_TO_COMMIT_BUMP = "PromptToCommitBump"
    PROMPT_TO_COMMIT_DEPS = "PromptToCommitDeps"
    PROMPT_TO_COMMIT_RELEASED_DEPS_BUMP = "PromptToCommitReleasedDepsBump"
    PROMPT_TO_RELEASE = "PromptToRelease"
    PROMPT_TO_RELEASE_DEPS = "PromptToReleaseDeps"

    def __str__(self) -> str:
        return self.value


class Action(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"

    def __str__(self) -> str:
        return self.value


Transitions = Mapping[State, Mapping[Action, State]]
TransitionHook = Callable[[State, Action, State], None]

S = Action.SUCCESS
F = Action.FAILURE


def _chain(*states: State) -> dict[State, dict[Action, State]]:
    """Link states in order on the success action."""
    return {a: {S: b} for a, b in zip(states, states[1:])}


def _on_failure(states: Iterable[State], target: State) -> dict[State, dict[Action, State]]:
    return {s: {F: target} for s in states}


def _merge(*parts: Mapping[State, Mapping[Action, State]]) -> dict[State, dict[Action, State]]:
    merged: dict[State, dict[Action, State]] = {}
    for part in parts:
        for state, edges in part.items():
            merged.setdefault(state, {}).update(edges)
    return merged


@dataclass(frozen=True)
class MachineDefinition:
    """An immutable state graph.

    Attributes:
        name: Human readable machine name.
        transitions: state → action → next state. Unlisted pairs are invalid.
        initial: The state every run starts in.
    """

    name: str
    transitions: Transitions
    initial: State = State.INIT

    @property
    def states(self) -> frozenset[State]:
        found = {self.initial, *self.transitions}
        for edges in self.transitions.values():
            found.update(edges.values())
        return frozenset(found)

    @property
    def actions(self) -> frozenset[Action]:
        return frozenset(a for edges in self.transitions.values() for a in edges)

    @property
    def terminal_states(self) -> frozenset[State]:
        return frozenset(s for s in self.states if not self.transitions.get(s))

    def is_terminal(self, state: State) -> bool:
        return not self.transitions.get(state)

    def next_state(self, state: State, action: Action) -> State:
        try:
            return self.transitions[state][action]
        except KeyError:
            raise InvalidTransitionError(str(state), str(action)) from None

    def reachable_states(self, start: State | None = None) -> frozenset[State]:
        start = start or self.initial
        seen = {start}
        queue = [start]
        while queue:
            for target in self.transitions.get(queue.pop(0), {}).values():
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return frozenset(seen)

    def create(self) -> StateMachine:
        return StateMachine(self)


@dataclass
class StateMachine:
    """A running instance of a MachineDefinition.

    The current state only changes by posting actions.
    """

    definition: MachineDefinition
    _state: State = field(init=False)
    action_count: int = field(default=0, init=False)
    _hooks: list[TransitionHook] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self._state = self.definition.initial

    @property
    def state(self) -> State:
        return self._state

    def is_terminal(self) -> bool:
        return self.definition.is_terminal(self._state)

    def action(self, action: Action | str) -> State:
        """Post an action, advancing the machine.

        Raises:
            InvalidTransitionError: If the current state has no transition
                for this action.
        """
        action = Action(action)
        source = self._state
        target = self.definition.next_state(source, action)
        self._state = target
        self.action_count += 1
        for hook in self._hooks:
            hook(source, action, target)
        return target

    def hook_any_transition(self, hook: TransitionHook) -> None:
        """Register an observer called with (from, action, to) on each transition."""
        self._hooks.append(hook)


_DEPENDENCY_SUBFLOW = _merge(
    # For DoBumpReleasedDependencies, success means there was nothing to bump;
    # failure means there were bumps and thus local changes to be merged.
    _chain(
        State.DO_BUMP_RELEASED_DEPENDENCIES,
        State.CHECK_NO_MORE_PRERELEASE_DEPENDENCIES,
        State.CHECK_SHOULD_COMMIT_DEPS,
        State.PROMPT_TO_PR_DEPS,
    ),
    {State.CHECK_NO_PRERELEASE_DEPENDENCIES: {F: State.DO_BUMP_RELEASED_DEPENDENCIES}},
    {State.DO_BUMP_RELEASED_DEPENDENCIES: {F: State.CHECK_NO_PRERELEASE_DEPENDENCIES_2}},
    {State.CHECK_NO_PRERELEASE_DEPENDENCIES_2: {F: State.PROMPT_TO_RELEASE_DEPS}},
    {State.CHECK_NO_MORE_PRERELEASE_DEPENDENCIES: {F: State.PROMPT_TO_RELEASE_DEPS}},
    _chain(
        State.CHECK_NO_PRERELEASE_DEPENDENCIES_2,
        State.CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP,
        State.PROMPT_TO_PR_RELEASED_DEPS_BUMP,
    ),
    {State.CHECK_SHOULD_COMMIT_DEPS: {F: State.PROMPT_TO_COMMIT_DEPS}},
    {
        State.CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP: {
            F: State.PROMPT_TO_COMMIT_RELEASED_DEPS_BUMP
        }
    },
)

_COMMON_CHECKS = (
    State.INIT,
    State.CHECK_SHOULD_RUN_CHECKS,
    State.CHECK_VALID_RELEASE_GROUP,
    State.CHECK_POLICY,
    State.CHECK_BRANCH_NAME,
    State.CHECK_HAS_REMOTE,
    State.CHECK_BRANCH_UP_TO_DATE,
    State.CHECK_NO_PRERELEASE_DEPENDENCIES,
)

RELEASE_MACHINE = MachineDefinition(
    name="Release Process",
    transitions=_merge(
        _chain(
            *_COMMON_CHECKS,
            State.CHECK_IF_CURRENT_RELEASE_GROUP_IS_RELEASED,
            State.DO_RELEASE_GROUP_BUMP_PATCH,
            State.CHECK_SHOULD_COMMIT_BUMP,
            State.PROMPT_TO_PR_BUMP,
        ),
        {State.CHECK_SHOULD_RUN_CHECKS: {F: State.CHECK_NO_PRERELEASE_DEPENDENCIES}},
        _on_failure(
            [
                State.INIT,
                State.CHECK_VALID_RELEASE_GROUP,
                State.CHECK_POLICY,
                State.CHECK_BRANCH_NAME,
                State.CHECK_HAS_REMOTE,
                State.CHECK_BRANCH_UP_TO_DATE,
                State.DO_RELEASE_GROUP_BUMP_PATCH,
            ],
            State.FAILED,
        ),
        _DEPENDENCY_SUBFLOW,
        {State.CHECK_SHOULD_COMMIT_BUMP: {F: State.PROMPT_TO_COMMIT_BUMP}},
        {State.CHECK_IF_CURRENT_RELEASE_GROUP_IS_RELEASED: {F: State.PROMPT_TO_RELEASE}},
    ),
)

PREP_MACHINE = MachineDefinition(
    name="Release Prep Process",
    transitions=_merge(
        _chain(
            *_COMMON_CHECKS,
            State.CHECK_RELEASE_BRANCH_DOES_NOT_EXIST,
            State.CHECK_INSTALL_BUILD_TOOLS,
            State.DO_RELEASE_GROUP_BUMP_MINOR,
            State.CHECK_SHOULD_COMMIT_BUMP,
            State.PROMPT_TO_PR_BUMP,
        ),
        {State.CHECK_SHOULD_RUN_CHECKS: {F: State.CHECK_NO_PRERELEASE_DEPENDENCIES}},
        _on_failure(
            [
                State.INIT,
                State.CHECK_VALID_RELEASE_GROUP,
                State.CHECK_POLICY,
                State.CHECK_BRANCH_NAME,
                State.CHECK_HAS_REMOTE,
                State.CHECK_BRANCH_UP_TO_DATE,
                State.CHECK_RELEASE_BRANCH_DOES_NOT_EXIST,
                State.CHECK_INSTALL_BUILD_TOOLS,
                State.DO_RELEASE_GROUP_BUMP_MINOR,
            ],
            State.FAILED,
        ),
        _DEPENDENCY_SUBFLOW,
        {State.CHECK_SHOULD_COMMIT_BUMP: {F: State.PROMPT_TO_COMMIT_BUMP}},
    ),
)

MACHINES: dict[str, MachineDefinition] = {
    "release": RELEASE_MACHINE,
    "prep": PREP_MACHINE,
}

STATE_DESCRIPTIONS: dict[State, str] = {
    State.INIT: "The initial state that all machines start in.",
    State.FAILED: "The terminal state that most states will transition to if they fail.",
    State.CHECK_SHOULD_RUN_CHECKS: "Succeeds if the state machine's checks should be run.",
    State.CHECK_VALID_RELEASE_GROUP: "Succeeds if the release group or package is valid.",
    State.CHECK_POLICY: "Succeeds if the repo policy check succeeds.",
    State.CHECK_BRANCH_NAME: "Succeeds if the current branch matches the expected pattern.",
    State.CHECK_HAS_REMOTE: "Succeeds if there is a remote for the upstream repo.",
    State.CHECK_BRANCH_UP_TO_DATE: "Succeeds if the branch is up to date with the remote.",
    State.CHECK_NO_PRERELEASE_DEPENDENCIES: (
        "Succeeds if the release group has no dependencies on pre-release "
        "packages within the repo."
    ),
    State.CHECK_NO_PRERELEASE_DEPENDENCIES_2: (
        "Succeeds if bumping released dependencies cleared every pre-release dependency."
    ),
    State.CHECK_NO_MORE_PRERELEASE_DEPENDENCIES: (
        "Succeeds if no pre-release dependencies remain after checking for releases."
    ),
    State.CHECK_IF_CURRENT_RELEASE_GROUP_IS_RELEASED: (
        "Succeeds if the release group has been released at the current version."
    ),
    State.CHECK_RELEASE_BRANCH_DOES_NOT_EXIST: "Succeeds if the release branch does not yet exist.",
    State.CHECK_INSTALL_BUILD_TOOLS: "Succeeds if the workspace environment is installed.",
    State.CHECK_SHOULD_COMMIT_BUMP: (
        "Succeeds if the local bump changes should be committed to a new branch."
    ),
    State.CHECK_SHOULD_COMMIT_DEPS: (
        "Succeeds if the local dependency changes should be committed to a new branch."
    ),
    State.CHECK_SHOULD_COMMIT_RELEASED_DEPS_BUMP: (
        "Succeeds if the released dependency bumps should be committed to a new branch."
    ),
    State.DO_RELEASE_GROUP_BUMP_PATCH: "Does a patch bump of the release group.",
    State.DO_RELEASE_GROUP_BUMP_MINOR: "Does a major or minor bump of the release group.",
    State.DO_BUMP_RELEASED_DEPENDENCIES: (
        "Bumps pre-release dependencies that have been released to their release versions."
    ),
    State.PROMPT_TO_PR_BUMP: "Prompts to create a bump PR from the current branch.",
    State.PROMPT_TO_PR_DEPS: "Prompts to create a dependency bump PR from the current branch.",
    State.PROMPT_TO_PR_RELEASED_DEPS_BUMP: (
        "Prompts to create a PR for the released dependency bumps."
    ),
    State.PROMPT_TO_COMMIT_BUMP: "Prompts to commit local bump changes manually.",
    State.PROMPT_TO_COMMIT_DEPS: "Prompts to commit local dependency changes manually.",
    State.PROMPT_TO_COMMIT_RELEASED_DEPS_BUMP: (
        "Prompts to commit local released dependency bumps manually."
    ),
    State.PROMPT_TO_RELEASE: "Prompts to run a release build for the release group.",
    State.PROMPT_TO_RELEASE_DEPS: "Prompts to release the pre-release dependencies first.",
}

ACTION_DESCRIPTIONS: dict[Action, str] = {
    Action.SUCCESS: "Indicates that the state succeeded.",
    Action.FAILURE: "Indicates that the state failed.",
}
