"""Tests for the client state container."""

import asyncio

import pytest

from bloodbank.core.models import DEFAULT_HOSPITALS, RequestStatus, Session, View
from bloodbank.core.state import (
    INIT_FAILED,
    LOGIN_NOTICE,
    SYNC_FAILED,
    AppState,
    DonateModalToggled,
    InitFailed,
    NoticeShown,
    RequestCompleted,
    SessionChanged,
    SnapshotReceived,
    Store,
    SyncFailed,
    ViewChanged,
    reduce,
)

SESSION = Session(uid="u1")


def signed_in_state() -> AppState:
    return reduce(AppState(), SessionChanged(SESSION))


def test_initial_state_is_loading_login():
    state = AppState()
    assert state.view is View.LOGIN
    assert state.loading
    assert not state.signed_in


def test_sign_in_shows_home_and_notice():
    state = signed_in_state()
    assert state.view is View.HOME
    assert state.session == SESSION
    assert state.notice == LOGIN_NOTICE
    assert not state.synced


def test_snapshot_replaces_banks():
    state = reduce(signed_in_state(), SnapshotReceived(DEFAULT_HOSPITALS))
    assert state.banks == DEFAULT_HOSPITALS
    assert state.synced
    assert not state.loading

    state = reduce(state, SnapshotReceived(DEFAULT_HOSPITALS[:1]))
    assert [b.id for b in state.banks] == ["hospital-A"]


def test_snapshot_ignored_when_signed_out():
    state = reduce(AppState(), SnapshotReceived(DEFAULT_HOSPITALS))
    assert state.banks == ()


def test_sign_out_clears_data():
    state = reduce(signed_in_state(), SnapshotReceived(DEFAULT_HOSPITALS))
    state = reduce(state, RequestCompleted(RequestStatus.error("x")))
    state = reduce(state, SessionChanged(None))

    assert state.view is View.LOGIN
    assert state.banks == ()
    assert state.request_status == RequestStatus()
    assert not state.loading


def test_views_require_session():
    assert reduce(AppState(), ViewChanged(View.ABOUT)).view is View.LOGIN
    assert reduce(signed_in_state(), ViewChanged(View.ABOUT)).view is View.ABOUT


def test_donate_modal_requires_session():
    assert not reduce(AppState(), DonateModalToggled(True)).show_donate
    state = reduce(signed_in_state(), DonateModalToggled(True))
    assert state.show_donate
    assert not reduce(state, DonateModalToggled(False)).show_donate


def test_failures_set_banner():
    assert reduce(signed_in_state(), SyncFailed()).error == SYNC_FAILED
    state = reduce(AppState(), InitFailed())
    assert state.error == INIT_FAILED
    assert not state.loading


def test_notice_cleared():
    assert reduce(signed_in_state(), NoticeShown(None)).notice is None


def test_unknown_action_rejected():
    with pytest.raises(TypeError):
        reduce(AppState(), object())


def test_store_notifies_only_on_change():
    store = Store()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.dispatch(ViewChanged(View.ABOUT))  # no session, state unchanged
    store.dispatch(SessionChanged(SESSION))
    unsubscribe()
    store.dispatch(SessionChanged(None))

    assert len(seen) == 1
    assert seen[0].session == SESSION


async def test_wait_for_resolves_on_later_dispatch():
    store = Store()

    async def sign_in_later():
        await asyncio.sleep(0.01)
        store.dispatch(SessionChanged(SESSION))

    task = asyncio.create_task(sign_in_later())
    state = await store.wait_for(lambda s: s.signed_in, timeout=1)
    await task

    assert state.session == SESSION


async def test_wait_for_times_out():
    with pytest.raises(TimeoutError):
        await Store().wait_for(lambda s: s.signed_in, timeout=0.01)


async def test_changes_yields_current_then_updates():
    store = Store()
    states = store.changes()

    first = await anext(states)
    store.dispatch(SessionChanged(SESSION))
    second = await anext(states)
    await states.aclose()

    assert not first.signed_in
    assert second.signed_in
