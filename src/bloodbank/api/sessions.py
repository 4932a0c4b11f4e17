"""Browser session registry mapping cookies to client controllers."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

import structlog
from fastapi import HTTPException, Request

from bloodbank.config import AppSettings, get_settings
from bloodbank.core.client import BloodBankClient
from bloodbank.core.gateway import SyncGateway
from bloodbank.core.identity import DatabricksIdentityProvider, IdentityProvider
from bloodbank.db.base import DocumentStore

logger = structlog.get_logger()

SESSION_COOKIE = "bloodbank_session"
SESSION_HEADER = "X-Bloodbank-Session"


def default_identity_factory() -> IdentityProvider:
    return DatabricksIdentityProvider(get_settings().databricks.host or None)


class ClientRegistry:
    """Creates, looks up and tears down BloodBankClient instances.

    Clients are kept in least-recently-used order. Creating a client first
    closes every client idle longer than idle_seconds, then the oldest ones
    until there is room under max_clients.
    """

    def __init__(
        self,
        store: DocumentStore,
        app_settings: AppSettings,
        identity_factory: Callable[[], IdentityProvider] = default_identity_factory,
    ):
        self.store = store
        self.app_settings = app_settings
        self._identity_factory = identity_factory
        self._clients: OrderedDict[str, BloodBankClient] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._clients)

    async def create(self) -> BloodBankClient:
        await self._evict()
        gateway = SyncGateway(
            identity=self._identity_factory(),
            store=self.store,
            collection_path=self.app_settings.collection_path,
        )
        client = BloodBankClient(
            gateway, initial_token=self.app_settings.initial_auth_token
        )
        client.start()
        self._clients[client.id] = client
        self._last_seen[client.id] = time.monotonic()
        logger.info("client_created", client_id=client.id, clients=len(self._clients))
        return client

    def get(self, client_id: str | None) -> BloodBankClient | None:
        if not client_id:
            return None
        client = self._clients.get(client_id)
        if client is not None:
            self._clients.move_to_end(client_id)
            self._last_seen[client_id] = time.monotonic()
        return client

    async def remove(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        self._last_seen.pop(client_id, None)
        if client is not None:
            await client.close()
            logger.info("client_removed", client_id=client_id)

    async def close_all(self) -> None:
        for client_id in list(self._clients):
            await self.remove(client_id)

    async def _evict(self) -> None:
        cutoff = time.monotonic() - self.app_settings.client_idle_seconds
        idle = [cid for cid, seen in self._last_seen.items() if seen <= cutoff]
        for client_id in idle:
            logger.info("client_expired", client_id=client_id)
            await self.remove(client_id)

        # Leave room for the client about to be created
        while self._clients and len(self._clients) >= self.app_settings.max_clients:
            client_id = next(iter(self._clients))
            logger.info("client_evicted", client_id=client_id)
            await self.remove(client_id)


def client_id_from_request(request: Request) -> str | None:
    """Read the client id from the session cookie, or the header for non-browser callers."""
    return request.cookies.get(SESSION_COOKIE) or request.headers.get(SESSION_HEADER)


def get_registry(request: Request) -> ClientRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Service is not ready")
    return registry


def get_client(request: Request) -> BloodBankClient:
    """Resolve the caller's client or fail with 401."""
    client = get_registry(request).get(client_id_from_request(request))
    if client is None:
        raise HTTPException(status_code=401, detail="No active session")
    return client


def get_signed_in_client(request: Request) -> BloodBankClient:
    client = get_client(request)
    if not client.state.signed_in:
        raise HTTPException(status_code=401, detail="Not signed in")
    return client
