"""
Explicit lifecycle state machine for compilers and dev servers.

A compiler moves IDLE -> COMPILING -> READY|ERROR and back to COMPILING on
every watch cycle; a server moves IDLE -> LISTENING (or ERROR when the bind
fails). Both end in CLOSED. Waiters block on a condition variable, which is
what lets the watch modes signal "first pass finished" exactly once while
recompilation carries on in the background.
"""

from __future__ import annotations

import threading
from enum import Enum, auto
from typing import Callable, Optional

from buildapp.core.errors import InvalidTransition


class State(Enum):
    """Lifecycle states shared by compilers and servers."""
    IDLE = auto()
    COMPILING = auto()
    READY = auto()
    ERROR = auto()
    LISTENING = auto()
    CLOSED = auto()


COMPILER_TRANSITIONS: dict[State, frozenset[State]] = {
    State.IDLE: frozenset({State.COMPILING, State.CLOSED}),
    State.COMPILING: frozenset({State.READY, State.ERROR, State.CLOSED}),
    State.READY: frozenset({State.COMPILING, State.CLOSED}),
    State.ERROR: frozenset({State.COMPILING, State.CLOSED}),
    State.CLOSED: frozenset(),
}

SERVER_TRANSITIONS: dict[State, frozenset[State]] = {
    State.IDLE: frozenset({State.LISTENING, State.ERROR, State.CLOSED}),
    State.LISTENING: frozenset({State.CLOSED}),
    State.ERROR: frozenset({State.CLOSED}),
    State.CLOSED: frozenset(),
}

# States that end a compile pass
SETTLED_STATES = (State.READY, State.ERROR)

Listener = Callable[[State, State], None]


class Lifecycle:
    """Thread-safe state holder with a fixed transition table."""

    def __init__(
        self,
        transitions: dict[State, frozenset[State]],
        initial: State = State.IDLE,
    ):
        self._transitions = transitions
        self._state = initial
        self._cond = threading.Condition()
        self._listeners: list[Listener] = []
        self._passes = 0

    @property
    def state(self) -> State:
        with self._cond:
            return self._state

    @property
    def passes(self) -> int:
        """Number of times the machine has settled in READY or ERROR."""
        with self._cond:
            return self._passes

    def can_transition(self, new_state: State) -> bool:
        with self._cond:
            return new_state in self._transitions.get(self._state, frozenset())

    def transition(self, new_state: State) -> None:
        """Move to new_state, raising InvalidTransition if not allowed."""
        with self._cond:
            old_state = self._state
            allowed = self._transitions.get(old_state, frozenset())
            if new_state not in allowed:
                raise InvalidTransition(
                    f"Cannot move from {old_state.name} to {new_state.name}"
                )
            self._state = new_state
            if new_state in SETTLED_STATES:
                self._passes += 1
            self._cond.notify_all()
            listeners = list(self._listeners)

        for listener in listeners:
            listener(old_state, new_state)

    def on_change(self, listener: Listener) -> None:
        """Register a callback invoked as listener(old, new) after each move."""
        with self._cond:
            self._listeners.append(listener)

    def wait_for(self, *states: State, timeout: Optional[float] = None) -> bool:
        """Block until the current state is one of states. False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state in states, timeout)

    def wait_settled(self, count: int = 1, timeout: Optional[float] = None) -> bool:
        """Block until at least `count` passes have settled (or CLOSED)."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._passes >= count or self._state is State.CLOSED,
                timeout,
            )
