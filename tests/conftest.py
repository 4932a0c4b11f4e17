"""Shared fixtures for Blood Bank tests."""

import pytest

from bloodbank.core.client import BloodBankClient
from bloodbank.core.errors import AuthError
from bloodbank.core.gateway import SyncGateway
from bloodbank.core.identity import IdentityProvider
from bloodbank.core.models import DEFAULT_HOSPITALS
from bloodbank.db.memory import MemoryDocumentStore

COLLECTION = "artifacts/test-app/public/data/bloodBanks"
VALID_TOKEN = "valid-token"


class FakeIdentityProvider(IdentityProvider):
    """Accepts VALID_TOKEN as user 'user-1' and rejects everything else."""

    async def _verify_token(self, token: str) -> str:
        if token != VALID_TOKEN:
            raise AuthError("invalid token")
        return "user-1"


class RecordingStore(MemoryDocumentStore):
    """Memory store that counts partial updates."""

    def __init__(self):
        super().__init__()
        self.updates: list[tuple[str, str, dict]] = []

    async def update_document(self, collection_path, doc_id, fields):
        self.updates.append((collection_path, doc_id, fields))
        await super().update_document(collection_path, doc_id, fields)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
async def seeded_store(store: RecordingStore) -> RecordingStore:
    for record in DEFAULT_HOSPITALS:
        await store.set_document(COLLECTION, record.id, record.to_document())
    return store


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def gateway(store: RecordingStore, identity: FakeIdentityProvider) -> SyncGateway:
    return SyncGateway(identity=identity, store=store, collection_path=COLLECTION)


@pytest.fixture
async def client(gateway: SyncGateway):
    bb_client = BloodBankClient(gateway, notice_seconds=0.05)
    bb_client.start()
    yield bb_client
    await bb_client.close()
