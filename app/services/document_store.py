from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from google.cloud.firestore_v1 import SERVER_TIMESTAMP

# Collection names used by the portal.
BOM_TABLES = 'bom_tables'
SHARED_MATERIALS = 'shared_materials'
CATEGORIES = 'categorys'
EXCEL_ANALYSIS = 'excelAnalysis'
PRICING_HISTORY = 'pricingHistory'
HISTORY_SUBCOLLECTION = 'history'

__all__ = [
    'BOM_TABLES',
    'BatchOperation',
    'CATEGORIES',
    'Document',
    'DocumentNotFoundError',
    'DocumentStore',
    'DocumentStoreError',
    'EXCEL_ANALYSIS',
    'HISTORY_SUBCOLLECTION',
    'PRICING_HISTORY',
    'SERVER_TIMESTAMP',
    'SHARED_MATERIALS',
    'WriteOperation',
    'subcollection_path',
]


class DocumentStoreError(Exception):
    """Raised when a read or write against the document store fails."""


class DocumentNotFoundError(DocumentStoreError):
    pass


@dataclass(frozen=True)
class Document:
    id: str
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def subcollection_path(collection: str, document_id: str, subcollection: str) -> str:
    return f'{collection}/{document_id}/{subcollection}'


class BatchOperation(str, enum.Enum):
    SET = 'SET'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


@dataclass(frozen=True)
class WriteOperation:
    op: BatchOperation
    collection: str
    document_id: str
    data: dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    async def get_all(
        self,
        collection: str,
        *,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]: ...

    async def get(self, collection: str, document_id: str) -> Document | None: ...

    def new_id(self, collection: str) -> str: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def set(self, collection: str, document_id: str, data: dict[str, Any]) -> None: ...

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, document_id: str) -> None: ...

    async def write_batch(self, writes: Sequence[WriteOperation]) -> None:
        """Commit every write together; on failure none of them is applied."""
        ...
