"""Identity provider sessions for blood bank clients."""

from __future__ import annotations

import asyncio
import uuid
from typing import AsyncIterator

import structlog

from bloodbank.core.errors import AuthError
from bloodbank.core.models import Session

logger = structlog.get_logger()


class IdentityProvider:
    """Holds one client's session and broadcasts auth state changes.

    Anonymous sign-in mints a random uid. Token sign-in is delegated to
    `_verify_token`, which subclasses bind to a real identity service.
    """

    def __init__(self):
        self._session: Session | None = None
        self._listeners: set[asyncio.Queue] = set()

    @property
    def current_session(self) -> Session | None:
        return self._session

    async def sign_in_anonymously(self) -> Session:
        session = Session(uid=uuid.uuid4().hex, is_anonymous=True)
        logger.info("signed_in", uid=session.uid, anonymous=True)
        self._set_session(session)
        return session

    async def sign_in_with_token(self, token: str) -> Session:
        """Sign in with a pre-issued token.

        Raises:
            AuthError: If the token is empty or rejected
        """
        if not token:
            raise AuthError("Empty sign-in token")
        uid = await self._verify_token(token)
        session = Session(uid=uid, is_anonymous=False)
        logger.info("signed_in", uid=uid, anonymous=False)
        self._set_session(session)
        return session

    async def sign_out(self) -> None:
        if self._session is not None:
            logger.info("signed_out", uid=self._session.uid)
        self._set_session(None)

    async def auth_states(self) -> AsyncIterator[Session | None]:
        """Yield the current session, then every later change."""
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.add(queue)
        try:
            yield self._session
            while True:
                yield await queue.get()
        finally:
            self._listeners.discard(queue)

    async def _verify_token(self, token: str) -> str:
        raise AuthError("Token sign-in is not supported by this identity provider")

    def _set_session(self, session: Session | None) -> None:
        if session == self._session:
            return
        self._session = session
        for queue in self._listeners:
            queue.put_nowait(session)


class DatabricksIdentityProvider(IdentityProvider):
    """Resolves sign-in tokens to workspace users."""

    def __init__(self, workspace_host: str | None = None):
        super().__init__()
        self._workspace_host = workspace_host

    async def _verify_token(self, token: str) -> str:
        if not self._workspace_host:
            raise AuthError("DATABRICKS_HOST is required for token sign-in")

        def lookup_user():
            from databricks.sdk import WorkspaceClient

            w = WorkspaceClient(host=self._workspace_host, token=token)
            return w.current_user.me()

        try:
            user = await asyncio.to_thread(lookup_user)
        except Exception as e:
            logger.error("token_sign_in_failed", error=str(e))
            raise AuthError(f"Sign-in token rejected: {e}") from e

        if not user.id:
            raise AuthError("Identity provider returned no user id")
        return user.id
