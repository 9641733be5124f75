"""Tests for monorelease.dispatch."""

from __future__ import annotations

from collections.abc import Mapping

import pytest
from conftest import RecordingLogger

from monorelease.dispatch import ExitStateLoop, StateDispatcher, StateHandler
from monorelease.errors import (
    HandlerProtocolError,
    StateHandlerConflictError,
    UnhandledStateError,
)
from monorelease.machines import Action, MachineDefinition, State, StateMachine

TINY = MachineDefinition(
    name="Tiny",
    transitions={
        State.INIT: {Action.SUCCESS: State.CHECK_POLICY},
        State.CHECK_POLICY: {
            Action.SUCCESS: State.PROMPT_TO_RELEASE,
            Action.FAILURE: State.FAILED,
        },
    },
)


def _post(action: Action) -> StateHandler:
    def handler(machine: StateMachine) -> None:
        machine.action(action)

    return handler


def _noop(machine: StateMachine) -> None:
    pass


class Layer:
    def __init__(self, handlers: Mapping[State, StateHandler]) -> None:
        self.handlers = handlers
        self.seen: list[State] = []

    def state_handlers(self) -> Mapping[State, StateHandler]:
        def wrap(state: State, handler: StateHandler) -> StateHandler:
            def recorded(machine: StateMachine) -> None:
                self.seen.append(state)
                handler(machine)

            return recorded

        return {s: wrap(s, h) for s, h in self.handlers.items()}


def _full_layer(policy: Action = Action.SUCCESS) -> Layer:
    return Layer(
        {
            State.INIT: _post(Action.SUCCESS),
            State.CHECK_POLICY: _post(policy),
            State.PROMPT_TO_RELEASE: _noop,
            State.FAILED: _noop,
        }
    )


class TestStateDispatcher:
    def test_runs_to_terminal(self, logger: RecordingLogger) -> None:
        layer = _full_layer()
        final = StateDispatcher(TINY.create(), [layer], logger).run()

        assert final is State.PROMPT_TO_RELEASE
        assert layer.seen == [State.INIT, State.CHECK_POLICY, State.PROMPT_TO_RELEASE]

    def test_failure_routes_to_failed(self, logger: RecordingLogger) -> None:
        final = StateDispatcher(TINY.create(), [_full_layer(Action.FAILURE)], logger).run()
        assert final is State.FAILED

    def test_handlers_split_across_layers(self, logger: RecordingLogger) -> None:
        first = Layer({State.INIT: _post(Action.SUCCESS), State.FAILED: _noop})
        second = Layer(
            {State.CHECK_POLICY: _post(Action.SUCCESS), State.PROMPT_TO_RELEASE: _noop}
        )
        assert StateDispatcher(TINY.create(), [first, second], logger).run() is (
            State.PROMPT_TO_RELEASE
        )
        assert first.seen == [State.INIT]
        assert second.seen == [State.CHECK_POLICY, State.PROMPT_TO_RELEASE]

    def test_conflicting_layers(self, logger: RecordingLogger) -> None:
        duplicate = Layer({State.CHECK_POLICY: _noop})
        with pytest.raises(StateHandlerConflictError, match="CheckPolicy"):
            StateDispatcher(TINY.create(), [_full_layer(), duplicate], logger)

    def test_strict_reports_missing_states(self, logger: RecordingLogger) -> None:
        partial = Layer({State.INIT: _post(Action.SUCCESS)})
        with pytest.raises(UnhandledStateError) as exc_info:
            StateDispatcher(TINY.create(), [partial], logger)
        assert exc_info.value.states == ("CheckPolicy", "Failed", "PromptToRelease")

    def test_unhandled_state_at_runtime(self, logger: RecordingLogger) -> None:
        partial = Layer({State.INIT: _post(Action.SUCCESS)})
        dispatcher = StateDispatcher(TINY.create(), [partial], logger, strict=False)
        with pytest.raises(UnhandledStateError, match="CheckPolicy"):
            dispatcher.run()

    def test_handle_state(self, logger: RecordingLogger) -> None:
        machine = TINY.create()
        partial = Layer({State.INIT: _post(Action.SUCCESS)})
        dispatcher = StateDispatcher(machine, [partial], logger, strict=False)

        assert dispatcher.handle_state(State.INIT)
        assert machine.state is State.CHECK_POLICY
        assert not dispatcher.handle_state(State.CHECK_POLICY)

    def test_handler_posting_nothing(self, logger: RecordingLogger) -> None:
        layer = _full_layer()
        layer.handlers = {**layer.handlers, State.CHECK_POLICY: _noop}
        with pytest.raises(HandlerProtocolError, match="posted 0 actions"):
            StateDispatcher(TINY.create(), [layer], logger).run()

    def test_handler_posting_twice(self, logger: RecordingLogger) -> None:
        def twice(machine: StateMachine) -> None:
            machine.action(Action.SUCCESS)
            machine.action(Action.SUCCESS)

        layer = _full_layer()
        layer.handlers = {**layer.handlers, State.INIT: twice}
        with pytest.raises(HandlerProtocolError, match="posted 2 actions"):
            StateDispatcher(TINY.create(), [layer], logger).run()

    def test_exit_state_loop(self, logger: RecordingLogger) -> None:
        def stop(machine: StateMachine) -> None:
            raise ExitStateLoop

        layer = _full_layer()
        layer.handlers = {**layer.handlers, State.CHECK_POLICY: stop}
        assert StateDispatcher(TINY.create(), [layer], logger).run() is State.CHECK_POLICY

    def test_traces_transitions(self, logger: RecordingLogger) -> None:
        StateDispatcher(TINY.create(), [_full_layer()], logger).run()
        assert logger.verbose_messages == [
            "Init [success] ==> CheckPolicy",
            "CheckPolicy [success] ==> PromptToRelease",
        ]

    def test_handler_errors_propagate(self, logger: RecordingLogger) -> None:
        def boom(machine: StateMachine) -> None:
            raise RuntimeError("boom")

        layer = _full_layer()
        layer.handlers = {**layer.handlers, State.INIT: boom}
        with pytest.raises(RuntimeError, match="boom"):
            StateDispatcher(TINY.create(), [layer], logger).run()
