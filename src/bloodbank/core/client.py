"""Per-browser client controller wiring the gateway into the state container."""

from __future__ import annotations

import asyncio
import uuid

import structlog

from bloodbank.core.errors import AuthError, SyncError
from bloodbank.core.gateway import Subscription, SyncGateway
from bloodbank.core.models import InventoryRecord, RequestStatus, Session, View
from bloodbank.core.request_handler import BloodRequest, InventoryRequestHandler
from bloodbank.core.state import (
    AppState,
    DonateModalToggled,
    ErrorRaised,
    NoticeShown,
    RequestCompleted,
    SessionChanged,
    SnapshotReceived,
    Store,
    SyncFailed,
    ViewChanged,
)

logger = structlog.get_logger()

LOGIN_FAILED = "Failed to log in. Please try again."
DONATION_THANKS = "Thank you for your donation! We will contact you shortly."
CONTACT_THANKS = "Thank you for your message! We will get back to you soon."


class BloodBankClient:
    """One signed-in (or signed-out) browser session.

    The auth-state stream and the inventory snapshot stream are consumed as
    two independent subscriptions, each dispatching into the client's store.
    """

    def __init__(
        self,
        gateway: SyncGateway,
        handler: InventoryRequestHandler | None = None,
        initial_token: str | None = None,
        notice_seconds: float = 3.0,
    ):
        self.id = uuid.uuid4().hex
        self.gateway = gateway
        self.handler = handler or InventoryRequestHandler(gateway)
        self.store = Store()
        self._initial_token = initial_token
        self._notice_seconds = notice_seconds
        self._auth_task: asyncio.Task | None = None
        self._subscription: Subscription | None = None
        self._notice_timer: asyncio.TimerHandle | None = None

    @property
    def state(self) -> AppState:
        return self.store.state

    def start(self) -> None:
        """Begin following auth state changes."""
        if self._auth_task is None:
            self._auth_task = asyncio.create_task(self._follow_auth_states())

    async def close(self) -> None:
        """Stop both subscriptions without signing out."""
        subscription = self._subscription
        self._stop_snapshots()
        if subscription is not None:
            await subscription.wait_closed()
        if self._notice_timer is not None:
            self._notice_timer.cancel()
        if self._auth_task is not None:
            self._auth_task.cancel()
            try:
                await self._auth_task
            except asyncio.CancelledError:
                pass
            self._auth_task = None

    async def sign_in(self, token: str | None = None) -> Session:
        """Sign in with the given or configured token, else anonymously.

        Raises:
            AuthError: If sign-in is rejected
        """
        try:
            return await self.gateway.sign_in(token or self._initial_token)
        except AuthError:
            self.store.dispatch(ErrorRaised(LOGIN_FAILED))
            raise

    async def sign_out(self) -> None:
        try:
            await self.gateway.sign_out()
        except AuthError as e:
            logger.error("sign_out_failed", client_id=self.id, error=str(e))

    def navigate(self, view: View) -> AppState:
        return self.store.dispatch(ViewChanged(view))

    async def submit_request(
        self,
        blood_type: str | None,
        hospital: str | None,
        amount: str | int | None,
        requester_name: str | None = None,
        requester_age: int | None = None,
        requester_gender: str | None = None,
    ) -> RequestStatus:
        """Submit a blood request against the latest snapshot."""
        request = BloodRequest.from_form(
            blood_type,
            hospital,
            amount,
            requester_name=requester_name,
            requester_age=requester_age,
            requester_gender=requester_gender,
        )
        status = await self.handler.submit(request, self.state.banks)
        self.store.dispatch(RequestCompleted(status))
        return status

    def open_donate(self) -> AppState:
        return self.store.dispatch(DonateModalToggled(True))

    def close_donate(self) -> AppState:
        return self.store.dispatch(DonateModalToggled(False))

    def submit_donation(
        self, name: str, weight_kg: float, age: int, medical_issues: bool
    ) -> str:
        """Acknowledge a donation offer. Nothing is stored."""
        logger.info(
            "donation_offered",
            client_id=self.id,
            age=age,
            weight_kg=weight_kg,
            medical_issues=medical_issues,
        )
        self.close_donate()
        return DONATION_THANKS

    def submit_contact(self, name: str, email: str, message: str) -> str:
        """Acknowledge a contact message. Nothing is stored."""
        logger.info("contact_message_received", client_id=self.id, length=len(message))
        return CONTACT_THANKS

    async def _follow_auth_states(self) -> None:
        async for session in self.gateway.auth_states():
            self._on_session(session)

    def _on_session(self, session: Session | None) -> None:
        self._stop_snapshots()
        self.store.dispatch(SessionChanged(session))
        if session is None:
            return

        self._schedule_notice_clear()
        try:
            self._subscription = self.gateway.subscribe(
                self._on_snapshot, self._on_sync_error
            )
        except SyncError as e:
            self._on_sync_error(e)

    def _on_snapshot(self, records: list[InventoryRecord]) -> None:
        self.store.dispatch(SnapshotReceived(tuple(records)))

    def _on_sync_error(self, error: SyncError) -> None:
        logger.error("inventory_sync_failed", client_id=self.id, error=str(error))
        self.store.dispatch(SyncFailed())

    def _stop_snapshots(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _schedule_notice_clear(self) -> None:
        if self._notice_timer is not None:
            self._notice_timer.cancel()
        loop = asyncio.get_running_loop()
        self._notice_timer = loop.call_later(
            self._notice_seconds, self.store.dispatch, NoticeShown(None)
        )
