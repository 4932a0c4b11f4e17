"""Client state container: immutable state, actions and a reducer."""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import AsyncIterator, Callable

import structlog

from bloodbank.core.models import (
    REQUEST_STATUS_NONE,
    InventoryRecord,
    RequestStatus,
    Session,
    View,
)

logger = structlog.get_logger()

SYNC_FAILED = "Failed to load blood bank data. Please try again later."
INIT_FAILED = "Application initialization failed. Check your configuration."
LOGIN_NOTICE = "Successfully done!"


@dataclass(frozen=True)
class AppState:
    """Everything a client page renders from."""

    view: View = View.LOGIN
    loading: bool = True
    session: Session | None = None
    banks: tuple[InventoryRecord, ...] = ()
    # True once a snapshot has arrived for the current session
    synced: bool = False
    request_status: RequestStatus = REQUEST_STATUS_NONE
    error: str | None = None
    show_donate: bool = False
    notice: str | None = None

    @property
    def signed_in(self) -> bool:
        return self.session is not None

    def bank_by_name(self, name: str) -> InventoryRecord | None:
        return next((b for b in self.banks if b.name == name), None)


# Actions


@dataclass(frozen=True)
class SessionChanged:
    session: Session | None


@dataclass(frozen=True)
class SnapshotReceived:
    banks: tuple[InventoryRecord, ...]


@dataclass(frozen=True)
class SyncFailed:
    message: str = SYNC_FAILED


@dataclass(frozen=True)
class InitFailed:
    message: str = INIT_FAILED


@dataclass(frozen=True)
class ErrorRaised:
    message: str


@dataclass(frozen=True)
class RequestCompleted:
    status: RequestStatus


@dataclass(frozen=True)
class ViewChanged:
    view: View


@dataclass(frozen=True)
class DonateModalToggled:
    open: bool


@dataclass(frozen=True)
class NoticeShown:
    message: str | None


Action = (
    SessionChanged
    | SnapshotReceived
    | SyncFailed
    | InitFailed
    | ErrorRaised
    | RequestCompleted
    | ViewChanged
    | DonateModalToggled
    | NoticeShown
)


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state that follows from applying action."""
    if isinstance(action, SessionChanged):
        if action.session is None:
            return replace(
                state,
                session=None,
                view=View.LOGIN,
                loading=False,
                banks=(),
                synced=False,
                request_status=REQUEST_STATUS_NONE,
                show_donate=False,
            )
        return replace(
            state,
            session=action.session,
            view=View.HOME,
            synced=False,
            error=None,
            notice=LOGIN_NOTICE,
        )

    if isinstance(action, SnapshotReceived):
        if state.session is None:
            return state
        return replace(state, banks=action.banks, synced=True, loading=False)

    if isinstance(action, (SyncFailed, InitFailed)):
        return replace(state, error=action.message, loading=False)

    if isinstance(action, ErrorRaised):
        return replace(state, error=action.message)

    if isinstance(action, RequestCompleted):
        return replace(state, request_status=action.status)

    if isinstance(action, ViewChanged):
        if state.session is None:
            return replace(state, view=View.LOGIN)
        return replace(state, view=action.view)

    if isinstance(action, DonateModalToggled):
        return replace(state, show_donate=action.open and state.session is not None)

    if isinstance(action, NoticeShown):
        return replace(state, notice=action.message)

    raise TypeError(f"Unknown action: {action!r}")


class Store:
    """Holds the current AppState and fans out every replacement."""

    def __init__(
        self,
        state: AppState | None = None,
        reducer: Callable[[AppState, Action], AppState] = reduce,
    ):
        self._state = state or AppState()
        self._reducer = reducer
        self._listeners: list[Callable[[AppState], None]] = []

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        new_state = self._reducer(self._state, action)
        if new_state != self._state:
            logger.debug("state_changed", action=type(action).__name__)
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self._state

    def subscribe(self, listener: Callable[[AppState], None]) -> Callable[[], None]:
        """Register a listener; the returned callable removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def changes(self) -> AsyncIterator[AppState]:
        """Yield the current state, then every later state."""
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            yield self._state
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    async def wait_for(
        self, predicate: Callable[[AppState], bool], timeout: float | None = None
    ) -> AppState:
        """Wait until predicate holds for the current state.

        Raises:
            TimeoutError: If timeout elapses first
        """
        async def first_match() -> AppState:
            async with aclosing(self.changes()) as states:
                async for state in states:
                    if predicate(state):
                        return state
            raise RuntimeError("state stream ended")

        return await asyncio.wait_for(first_match(), timeout)
