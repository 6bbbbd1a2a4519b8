"""
Tests for the lifecycle state machine shared by compilers and servers.
"""

from __future__ import annotations

import threading

import pytest

from buildapp.core.errors import InvalidTransition
from buildapp.core.lifecycle import (
    COMPILER_TRANSITIONS,
    SERVER_TRANSITIONS,
    Lifecycle,
    State,
)


@pytest.mark.evergreen
class TestCompilerTransitions:
    """Compilers cycle through COMPILING and settle in READY or ERROR."""

    def test_starts_idle(self) -> None:
        assert Lifecycle(COMPILER_TRANSITIONS).state is State.IDLE

    def test_watch_cycle(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        for state in (State.COMPILING, State.ERROR, State.COMPILING, State.READY, State.CLOSED):
            lifecycle.transition(state)
        assert lifecycle.state is State.CLOSED
        assert lifecycle.passes == 2

    def test_cannot_settle_without_compiling(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        with pytest.raises(InvalidTransition, match="IDLE to READY"):
            lifecycle.transition(State.READY)
        assert lifecycle.state is State.IDLE

    def test_closed_is_final(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        lifecycle.transition(State.CLOSED)
        assert not lifecycle.can_transition(State.COMPILING)
        with pytest.raises(InvalidTransition):
            lifecycle.transition(State.COMPILING)

    def test_compiler_never_listens(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        assert not lifecycle.can_transition(State.LISTENING)


@pytest.mark.evergreen
class TestServerTransitions:
    """Servers either listen or fail to bind, then close."""

    def test_listen_then_close(self) -> None:
        lifecycle = Lifecycle(SERVER_TRANSITIONS)
        lifecycle.transition(State.LISTENING)
        lifecycle.transition(State.CLOSED)
        assert lifecycle.state is State.CLOSED

    def test_bind_failure(self) -> None:
        lifecycle = Lifecycle(SERVER_TRANSITIONS)
        lifecycle.transition(State.ERROR)
        assert not lifecycle.can_transition(State.LISTENING)
        assert lifecycle.can_transition(State.CLOSED)


@pytest.mark.evergreen
class TestWaiting:
    """wait_for and wait_settled block until the machine gets there."""

    def test_wait_for_times_out(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        assert lifecycle.wait_for(State.READY, timeout=0.05) is False

    def test_wait_for_returns_immediately_when_in_state(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        assert lifecycle.wait_for(State.IDLE, timeout=0) is True

    def test_wait_settled_across_threads(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)

        def run_passes() -> None:
            for _ in range(3):
                lifecycle.transition(State.COMPILING)
                lifecycle.transition(State.READY)

        worker = threading.Thread(target=run_passes)
        worker.start()
        assert lifecycle.wait_settled(3, timeout=5)
        worker.join()
        assert lifecycle.passes == 3

    def test_wait_settled_released_by_close(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        timer = threading.Timer(0.05, lifecycle.transition, args=(State.CLOSED,))
        timer.start()
        assert lifecycle.wait_settled(1, timeout=5)
        assert lifecycle.passes == 0


@pytest.mark.evergreen
class TestListeners:
    """on_change listeners see every move."""

    def test_listener_receives_old_and_new(self) -> None:
        lifecycle = Lifecycle(COMPILER_TRANSITIONS)
        seen: list[tuple[State, State]] = []
        lifecycle.on_change(lambda old, new: seen.append((old, new)))

        lifecycle.transition(State.COMPILING)
        lifecycle.transition(State.READY)

        assert seen == [(State.IDLE, State.COMPILING), (State.COMPILING, State.READY)]
