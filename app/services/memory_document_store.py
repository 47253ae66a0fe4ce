from __future__ import annotations

import copy
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from app.services.document_store import (
    BOM_TABLES,
    CATEGORIES,
    SERVER_TIMESTAMP,
    SHARED_MATERIALS,
    BatchOperation,
    Document,
    DocumentNotFoundError,
    WriteOperation,
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _resolve_sentinels(data: dict[str, Any]) -> dict[str, Any]:
    resolved = copy.deepcopy({key: value for key, value in data.items() if value is not SERVER_TIMESTAMP})
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = _now()
    return resolved


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, datetime):
        return (0, value.timestamp())
    return (1, value)


class MemoryDocumentStore:
    def __init__(self, seed: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        for collection, documents in (seed or {}).items():
            for document_id, data in documents.items():
                self.collections.setdefault(collection, {})[document_id] = _resolve_sentinels(data)

    @classmethod
    def with_demo_data(cls) -> 'MemoryDocumentStore':
        created = _now()
        return cls(
            {
                CATEGORIES: {
                    'cat-sauce': {'name': '醬料'},
                    'cat-frozen': {'name': '冷凍食品'},
                },
                SHARED_MATERIALS: {
                    'mat-soy': {
                        'name': '醬油',
                        'purchaseUnitCost': '100',
                        'productUnit': '4',
                        'createdAt': created,
                    },
                    'mat-sugar': {
                        'name': '砂糖',
                        'purchaseUnitCost': '60',
                        'productUnit': '20',
                        'createdAt': created,
                    },
                },
                BOM_TABLES: {
                    'bom-braise': {
                        'tableName': '滷肉醬',
                        'category': '醬料',
                        'items': [
                            {'name': '醬油', 'quantity': '2', 'unitCost': '25.00', 'isShared': True},
                            {'name': '豬絞肉', 'quantity': '1', 'unitCost': '180', 'isShared': False},
                        ],
                        'totalCost': 230.0,
                        'imageUrl': '',
                        'createdAt': created,
                    },
                },
            }
        )

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    async def get_all(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        documents = [
            Document(id=document_id, data=copy.deepcopy(data))
            for document_id, data in self._collection(collection).items()
        ]
        if order_by:
            # Firestore omits documents that lack the ordering field.
            documents = [document for document in documents if document.data.get(order_by) is not None]
            documents.sort(key=lambda document: _sort_key(document.data.get(order_by)), reverse=descending)
        return documents

    async def get(self, collection: str, document_id: str) -> Document | None:
        data = self._collection(collection).get(document_id)
        if data is None:
            return None
        return Document(id=document_id, data=copy.deepcopy(data))

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        document_id = self.new_id(collection)
        self._collection(collection)[document_id] = _resolve_sentinels(data)
        return document_id

    async def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        self._collection(collection)[document_id] = _resolve_sentinels(data)

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None:
        documents = self._collection(collection)
        if document_id not in documents:
            raise DocumentNotFoundError(f'{collection}/{document_id} does not exist')
        documents[document_id].update(_resolve_sentinels(data))

    async def delete(self, collection: str, document_id: str) -> None:
        self._collection(collection).pop(document_id, None)

    async def write_batch(self, writes: Sequence[WriteOperation]) -> None:
        # Writes land on a staged copy that replaces the live data only once all succeed.
        staged = copy.deepcopy(self.collections)
        for write in writes:
            self._apply_write(staged, write)
        self.collections = staged

    def _apply_write(self, collections: dict[str, dict[str, dict[str, Any]]], write: WriteOperation) -> None:
        documents = collections.setdefault(write.collection, {})
        if write.op == BatchOperation.SET:
            documents[write.document_id] = _resolve_sentinels(write.data)
        elif write.op == BatchOperation.UPDATE:
            if write.document_id not in documents:
                raise DocumentNotFoundError(f'{write.collection}/{write.document_id} does not exist')
            documents[write.document_id].update(_resolve_sentinels(write.data))
        elif write.op == BatchOperation.DELETE:
            documents.pop(write.document_id, None)
        else:
            raise ValueError(f'Unsupported batch operation {write.op}')
