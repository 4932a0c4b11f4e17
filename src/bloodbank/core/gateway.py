"""Session and live inventory sync over the external backend."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Callable, Iterable

import structlog

from bloodbank.core.errors import AuthError, BloodBankError, SyncError, WriteError
from bloodbank.core.identity import IdentityProvider
from bloodbank.core.models import DEFAULT_HOSPITALS, InventoryRecord, Session
from bloodbank.db.base import DocumentStore

logger = structlog.get_logger()

SnapshotListener = Callable[[list[InventoryRecord]], None]
ErrorListener = Callable[[SyncError], None]


class Subscription:
    """Handle for a running snapshot listener."""

    def __init__(self, task: asyncio.Task, on_cancel: Callable[["Subscription"], None]):
        self._task = task
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()
        self._on_cancel(self)

    async def wait_closed(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class SyncGateway:
    """Signs a client in and streams the hospital inventory collection."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: DocumentStore,
        collection_path: str,
        seed_records: Iterable[InventoryRecord] = DEFAULT_HOSPITALS,
    ):
        self.identity = identity
        self.store = store
        self.collection_path = collection_path
        self._seed_records = tuple(seed_records)
        self._subscriptions: set[Subscription] = set()

    @property
    def session(self) -> Session | None:
        return self.identity.current_session

    async def sign_in(self, token: str | None = None) -> Session:
        """Establish a session, anonymous when no token is given.

        Raises:
            AuthError: If the identity provider rejects the credential
        """
        try:
            if token:
                return await self.identity.sign_in_with_token(token)
            return await self.identity.sign_in_anonymously()
        except AuthError as e:
            logger.error("sign_in_failed", error=str(e), with_token=bool(token))
            raise

    async def sign_out(self) -> None:
        """Cancel every subscription and end the session."""
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.cancel()
        for subscription in subscriptions:
            await subscription.wait_closed()
        await self.identity.sign_out()

    def auth_states(self) -> AsyncIterator[Session | None]:
        return self.identity.auth_states()

    async def snapshots(self) -> AsyncIterator[list[InventoryRecord]]:
        """Yield the full record list on every collection change.

        The first empty observation seeds the default hospitals; the seeded
        records then arrive as the next change instead of an empty list.
        """
        seeded = False
        async for documents in self.store.watch(self.collection_path):
            records = self._to_records(documents)
            if not records and not seeded:
                seeded = True
                if await self.seed_defaults():
                    continue

            logger.debug("inventory_snapshot", collection=self.collection_path, count=len(records))
            yield records

    def subscribe(
        self, on_update: SnapshotListener, on_error: ErrorListener | None = None
    ) -> Subscription:
        """Invoke on_update with every snapshot until cancelled.

        A channel failure ends the subscription. It is logged and passed to
        on_error when one is given.

        Raises:
            SyncError: If there is no signed-in session
        """
        if self.session is None:
            raise SyncError("Cannot subscribe without a signed-in session")

        async def run() -> None:
            try:
                async for records in self.snapshots():
                    on_update(records)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = e if isinstance(e, SyncError) else SyncError(str(e))
                logger.error("snapshot_subscription_failed", error=str(error))
                if on_error is not None:
                    on_error(error)

        subscription = Subscription(asyncio.create_task(run()), self._subscriptions.discard)
        self._subscriptions.add(subscription)
        logger.info("inventory_subscribed", collection=self.collection_path, uid=self.session.uid)
        return subscription

    async def seed_defaults(self) -> bool:
        """Write the default hospital records, returning whether any were written."""
        if not self._seed_records:
            return False
        logger.info("seeding_default_inventory", collection=self.collection_path)
        try:
            for record in self._seed_records:
                await self.store.set_document(
                    self.collection_path, record.id, record.to_document()
                )
        except BloodBankError as e:
            logger.error("seeding_failed", collection=self.collection_path, error=str(e))
            return False
        return True

    async def update_inventory(self, record_id: str, inventory: dict[str, int]) -> None:
        """Replace the inventory mapping of one record.

        Raises:
            WriteError: If the store rejects the update
        """
        try:
            await self.store.update_document(
                self.collection_path, record_id, {"inventory": inventory}
            )
        except WriteError:
            raise
        except Exception as e:
            raise WriteError(str(e)) from e

    def _to_records(self, documents) -> list[InventoryRecord]:
        records = []
        for doc in documents:
            try:
                records.append(InventoryRecord.from_document(doc.doc_id, doc.data))
            except (TypeError, ValueError) as e:
                logger.warning("malformed_inventory_document", doc_id=doc.doc_id, error=str(e))
        return records
