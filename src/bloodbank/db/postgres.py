"""Lakebase (Postgres) document store for the Blood Bank service."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator

import psycopg
import structlog
from psycopg import sql
from psycopg.types.json import Jsonb

from bloodbank.core.errors import SyncError, WriteError
from bloodbank.db.base import DocumentStore
from bloodbank.db.schemas import NOTIFY_CHANNEL, InventoryDocument

logger = structlog.get_logger()


class LakebaseConnectionFactory:
    """Factory for Lakebase connections with OAuth authentication."""

    def __init__(self):
        """Initialize connection factory.

        In Databricks Apps PGHOST and PGDATABASE are set by the Lakebase
        resource and the app's service principal supplies the token. Locally
        the LAKEBASE_* settings are used.
        """
        pghost = os.getenv("PGHOST")

        if pghost:
            from databricks.sdk import WorkspaceClient
            from databricks.sdk.core import Config

            self._config = Config()
            self._workspace_client = WorkspaceClient()

            self._postgres_username = self._config.client_id
            self._postgres_host = pghost
            self._postgres_database = os.getenv("PGDATABASE", "databricks_postgres")
            self._use_databricks_apps = True

            logger.info(
                "lakebase_factory_initialized",
                host=self._postgres_host,
                database=self._postgres_database,
                username=self._postgres_username,
                auth="databricks_apps_oauth",
            )
        else:
            from bloodbank.config import get_settings

            self._use_databricks_apps = False
            self._local_settings = get_settings()
            lakebase = self._local_settings.lakebase
            self._postgres_host = lakebase.host
            self._postgres_database = lakebase.database
            self._postgres_username = lakebase.user

            logger.info(
                "lakebase_factory_initialized",
                host=self._postgres_host,
                database=self._postgres_database,
                auth="local_oauth",
            )

    def connect_kwargs(self) -> dict[str, Any]:
        """Connection parameters with a fresh password or OAuth token."""
        if self._use_databricks_apps:
            password = self._workspace_client.config.oauth_token().access_token
            port, sslmode = 5432, "require"
        else:
            lakebase = self._local_settings.lakebase
            password = lakebase.get_password(self._local_settings.databricks.host or None)
            port, sslmode = lakebase.port, lakebase.sslmode

        return {
            "host": self._postgres_host,
            "port": port,
            "dbname": self._postgres_database,
            "user": self._postgres_username,
            "password": password,
            "sslmode": sslmode,
        }

    async def connect(self, autocommit: bool = False) -> psycopg.AsyncConnection:
        return await psycopg.AsyncConnection.connect(
            autocommit=autocommit, **self.connect_kwargs()
        )


_factory: LakebaseConnectionFactory | None = None


def get_factory() -> LakebaseConnectionFactory:
    """Get the global connection factory."""
    global _factory
    if _factory is None:
        _factory = LakebaseConnectionFactory()
    return _factory


class LakebaseDocumentStore(DocumentStore):
    """Document store on a JSONB table, with LISTEN/NOTIFY live queries."""

    def __init__(self, factory: LakebaseConnectionFactory | None = None):
        self._factory = factory or get_factory()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get a database connection context manager."""
        conn = await self._factory.connect()
        try:
            yield conn
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
        finally:
            await conn.close()

    async def health_check(self) -> bool:
        try:
            async with self.session() as conn:
                await conn.execute("SELECT 1")
            return True
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    async def list_documents(self, collection_path: str) -> list[InventoryDocument]:
        async with self.session() as conn:
            cur = await conn.execute(
                """
                SELECT collection_path, doc_id, data, updated_ts
                FROM bloodbank_documents
                WHERE collection_path = %s
                ORDER BY doc_id
                """,
                (collection_path,),
            )
            rows = await cur.fetchall()

        return [
            InventoryDocument(
                collection_path=row[0],
                doc_id=row[1],
                data=row[2],
                updated_ts=row[3],
            )
            for row in rows
        ]

    async def set_document(
        self, collection_path: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        try:
            async with self.session() as conn:
                await conn.execute(
                    """
                    INSERT INTO bloodbank_documents (collection_path, doc_id, data)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (collection_path, doc_id)
                    DO UPDATE SET data = EXCLUDED.data, updated_ts = NOW()
                    """,
                    (collection_path, doc_id, Jsonb(data)),
                )
        except psycopg.Error as e:
            raise WriteError(f"Failed to write {collection_path}/{doc_id}: {e}") from e

        logger.debug("document_set", collection=collection_path, doc_id=doc_id)

    async def update_document(
        self, collection_path: str, doc_id: str, fields: dict[str, Any]
    ) -> None:
        try:
            async with self.session() as conn:
                cur = await conn.execute(
                    """
                    UPDATE bloodbank_documents
                    SET data = data || %s, updated_ts = NOW()
                    WHERE collection_path = %s AND doc_id = %s
                    RETURNING doc_id
                    """,
                    (Jsonb(fields), collection_path, doc_id),
                )
                row = await cur.fetchone()
        except psycopg.Error as e:
            raise WriteError(f"Failed to update {collection_path}/{doc_id}: {e}") from e

        if row is None:
            raise WriteError(f"Document not found: {collection_path}/{doc_id}")

        logger.debug("document_updated", collection=collection_path, doc_id=doc_id)

    async def clear_collection(self, collection_path: str) -> int:
        async with self.session() as conn:
            cur = await conn.execute(
                "DELETE FROM bloodbank_documents WHERE collection_path = %s",
                (collection_path,),
            )
            return cur.rowcount

    async def watch(self, collection_path: str) -> AsyncIterator[list[InventoryDocument]]:
        try:
            conn = await self._factory.connect(autocommit=True)
            await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(NOTIFY_CHANNEL)))
        except psycopg.Error as e:
            raise SyncError(f"Failed to listen on {NOTIFY_CHANNEL}: {e}") from e

        logger.info("collection_watch_started", collection=collection_path)
        try:
            yield await self.list_documents(collection_path)
            async for notify in conn.notifies():
                if notify.payload == collection_path:
                    yield await self.list_documents(collection_path)
        except psycopg.Error as e:
            raise SyncError(f"Lost change feed for {collection_path}: {e}") from e
        finally:
            await conn.close()
            logger.info("collection_watch_stopped", collection=collection_path)
