"""Shared setup for the test modules; import it before anything under ``app``."""

from __future__ import annotations

import os
import tempfile

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('AUTH_DISPLAY_DELAY_SECONDS', '0')
os.environ.setdefault('IDENTITY_PROVIDER', 'mock')
os.environ.setdefault('DOCUMENT_STORE', 'memory')
os.environ.setdefault('BLOB_STORAGE', 'local')
os.environ.setdefault('UPLOAD_DIR', tempfile.mkdtemp(prefix='kind-food-erp-uploads-'))
os.environ.setdefault('MOCK_USERS', 'admin@kindfood.tw:kindfood123:管理員')

from app.services.document_store import HISTORY_SUBCOLLECTION, DocumentStoreError  # noqa: E402
from app.services.identity_provider import AuthUser  # noqa: E402
from app.services.memory_document_store import MemoryDocumentStore  # noqa: E402

ADMIN_EMAIL = 'admin@kindfood.tw'
ADMIN_PASSWORD = 'kindfood123'


def make_user(**overrides) -> AuthUser:
    values = {'uid': 'uid-1', 'email': ADMIN_EMAIL, 'display_name': '管理員'}
    values.update(overrides)
    return AuthUser(**values)


class FailingDocumentStore(MemoryDocumentStore):
    """Memory store whose reads, deletes or history writes fail like an unreachable backend."""

    def __init__(
        self,
        seed=None,
        *,
        fail_reads: bool = False,
        fail_deletes: bool = False,
        fail_history_writes: bool = False,
    ) -> None:
        super().__init__(seed)
        self.fail_reads = fail_reads
        self.fail_deletes = fail_deletes
        self.fail_history_writes = fail_history_writes

    async def get_all(self, collection, *, order_by=None, descending=False):
        if self.fail_reads:
            raise DocumentStoreError('unavailable')
        return await super().get_all(collection, order_by=order_by, descending=descending)

    async def get(self, collection, document_id):
        if self.fail_reads:
            raise DocumentStoreError('unavailable')
        return await super().get(collection, document_id)

    async def delete(self, collection, document_id):
        if self.fail_deletes:
            raise DocumentStoreError('unavailable')
        await super().delete(collection, document_id)

    def _apply_write(self, collections, write):
        if self.fail_history_writes and write.collection.endswith(f'/{HISTORY_SUBCOLLECTION}'):
            raise DocumentStoreError('unavailable')
        super()._apply_write(collections, write)
