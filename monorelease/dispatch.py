"""The state loop: drives a state machine by dispatching to handler layers.

Each layer exposes ``state_handlers()``, a mapping of the states it owns to
a handler callable. The dispatcher merges the mappings into one table when
it is built. A handler receives the running machine, does its work, and
posts exactly one action, unless the state is terminal, in which case it
posts none.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Protocol

from .errors import HandlerProtocolError, StateHandlerConflictError, UnhandledStateError
from .machines import Action, State, StateMachine
from .shell import Logger

StateHandler = Callable[[StateMachine], None]


class HandlerLayer(Protocol):
    def state_handlers(self) -> Mapping[State, StateHandler]: ...


class ExitStateLoop(Exception):
    """Raised by a handler to stop the loop in the current state."""


class StateDispatcher:
    """Runs a StateMachine to a terminal state.

    Args:
        machine: The machine instance to drive.
        layers: Handler layers. Each state may be owned by only one layer.
        logger: Receives transition tracing at verbose level.
        strict: If True, every state of the machine must have a handler.

    Raises:
        StateHandlerConflictError: If two layers claim the same state.
        UnhandledStateError: In strict mode, if any machine state has no handler.
    """

    def __init__(
        self,
        machine: StateMachine,
        layers: Iterable[HandlerLayer],
        logger: Logger,
        strict: bool = True,
    ) -> None:
        self.machine = machine
        self.logger = logger
        self.handlers: dict[State, StateHandler] = {}

        for layer in layers:
            for state, handler in layer.state_handlers().items():
                if state in self.handlers:
                    raise StateHandlerConflictError(str(state))
                self.handlers[state] = handler

        if strict:
            missing = sorted(
                str(s) for s in machine.definition.states if s not in self.handlers
            )
            if missing:
                raise UnhandledStateError(*missing)

        machine.hook_any_transition(self._trace)

    def _trace(self, source: State, action: Action, target: State) -> None:
        self.logger.verbose(f"{source} [{action}] ==> {target}")

    def handle_state(self, state: State) -> bool:
        """Run the handler for state. Returns False if no layer owns it."""
        handler = self.handlers.get(state)
        if handler is None:
            return False
        handler(self.machine)
        return True

    def run(self) -> State:
        """Loop until a terminal state is handled or a handler exits the loop.

        Returns:
            The state the machine stopped in.

        Raises:
            UnhandledStateError: If the machine enters a state no layer owns.
            HandlerProtocolError: If a handler for a non-terminal state posted
                no action or more than one.
        """
        while True:
            state = self.machine.state
            terminal = self.machine.is_terminal()
            posted_before = self.machine.action_count
            try:
                handled = self.handle_state(state)
            except ExitStateLoop:
                return self.machine.state

            if not handled:
                raise UnhandledStateError(str(state))
            if terminal:
                return state

            posted = self.machine.action_count - posted_before
            if posted != 1:
                raise HandlerProtocolError(
                    f"Handler for {state} posted {posted} actions; expected exactly one"
                )
