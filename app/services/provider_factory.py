from __future__ import annotations

from functools import lru_cache

from app.config import settings
from app.services.blob_storage import GcsBlobStorage, LocalBlobStorage
from app.services.firebase_identity_provider import FirebaseIdentityProvider
from app.services.firestore_document_store import FirestoreDocumentStore
from app.services.memory_document_store import MemoryDocumentStore
from app.services.mock_identity_provider import MockIdentityProvider, parse_mock_users


@lru_cache(maxsize=1)
def get_identity_provider():
    provider = settings.identity_provider.strip().lower()
    if provider == 'firebase':
        return FirebaseIdentityProvider()
    return MockIdentityProvider(parse_mock_users(settings.mock_users))


@lru_cache(maxsize=1)
def get_document_store():
    store = settings.document_store.strip().lower()
    if store == 'firestore':
        return FirestoreDocumentStore()
    return MemoryDocumentStore.with_demo_data()


@lru_cache(maxsize=1)
def get_blob_storage():
    backend = settings.blob_storage.strip().lower()
    if backend == 'gcs':
        return GcsBlobStorage()
    return LocalBlobStorage()
