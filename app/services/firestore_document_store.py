from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud.firestore_v1 import AsyncClient

from app.config import settings
from app.services.document_store import (
    BatchOperation,
    Document,
    DocumentNotFoundError,
    DocumentStoreError,
    WriteOperation,
)

logger = logging.getLogger(__name__)

DESCENDING = 'DESCENDING'
ASCENDING = 'ASCENDING'


class FirestoreDocumentStore:
    """
    Document store backed by a Firestore :class:`AsyncClient`.

    When ``FIRESTORE_EMULATOR_HOST`` is configured the client is routed to the
    local emulator, otherwise the default Google credentials chain is used.
    Collection paths may address sub-collections, e.g.
    ``shared_materials/<id>/history``.
    """

    def __init__(self, client: AsyncClient | None = None) -> None:
        if client is None:
            if not settings.firebase_project_id:
                raise ValueError('FIREBASE_PROJECT_ID is required when DOCUMENT_STORE=firestore')
            client = self._init_client()
        self.client = client

    def _init_client(self) -> AsyncClient:
        if settings.firestore_emulator_host:
            os.environ['FIRESTORE_EMULATOR_HOST'] = settings.firestore_emulator_host
            logger.info('Using Firestore emulator on %s', settings.firestore_emulator_host)
        else:
            os.environ.pop('FIRESTORE_EMULATOR_HOST', None)
        return AsyncClient(project=settings.firebase_project_id, database=settings.firestore_database)

    async def get_all(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        query = self.client.collection(collection)
        if order_by:
            query = query.order_by(order_by, direction=DESCENDING if descending else ASCENDING)
        try:
            snapshots = await query.get()
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to read collection {collection}: {exc}') from exc
        return [Document(id=snapshot.id, data=snapshot.to_dict() or {}) for snapshot in snapshots]

    async def get(self, collection: str, document_id: str) -> Document | None:
        try:
            snapshot = await self.client.collection(collection).document(document_id).get()
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to read {collection}/{document_id}: {exc}') from exc
        if not snapshot.exists:
            return None
        return Document(id=snapshot.id, data=snapshot.to_dict() or {})

    def new_id(self, collection: str) -> str:
        return self.client.collection(collection).document().id

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            _update_time, ref = await self.client.collection(collection).add(data)
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to add to {collection}: {exc}') from exc
        return ref.id

    async def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        try:
            await self.client.collection(collection).document(document_id).set(data)
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to write {collection}/{document_id}: {exc}') from exc

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        try:
            await self.client.collection(collection).document(document_id).update(data)
        except NotFound as exc:
            raise DocumentNotFoundError(f'{collection}/{document_id} does not exist') from exc
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to update {collection}/{document_id}: {exc}') from exc

    async def delete(self, collection: str, document_id: str) -> None:
        try:
            await self.client.collection(collection).document(document_id).delete()
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to delete {collection}/{document_id}: {exc}') from exc

    async def write_batch(self, writes: Sequence[WriteOperation]) -> None:
        batch = self.client.batch()
        for write in writes:
            ref = self.client.collection(write.collection).document(write.document_id)
            if write.op == BatchOperation.SET:
                batch.set(ref, write.data)
            elif write.op == BatchOperation.UPDATE:
                batch.update(ref, write.data)
            elif write.op == BatchOperation.DELETE:
                batch.delete(ref)
            else:
                raise ValueError(f'Unsupported batch operation {write.op}')
        try:
            await batch.commit()
        except NotFound as exc:
            raise DocumentNotFoundError(f'Batch target does not exist: {exc}') from exc
        except GoogleAPICallError as exc:
            raise DocumentStoreError(f'Failed to commit batch of {len(writes)} writes: {exc}') from exc
