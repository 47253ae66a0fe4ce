from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from app.services.blob_storage import BlobStorage, bom_image_key
from app.services.bom_editor_service import BomItem, compute_total_cost
from app.services.document_store import (
    BOM_TABLES,
    CATEGORIES,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
)
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.number_utils import format_money, to_storage_number
from app.services.outcomes import Outcome
from app.services.page_state import Liveness, fetch_collection
from app.services.shared_material_service import SharedMaterial
from app.services.sort_utils import filter_records

logger = logging.getLogger(__name__)

FETCH_ERROR_MESSAGE = '獲取 BOM 表時發生錯誤'
CATEGORY_FETCH_ERROR_MESSAGE = '獲取類別時發生錯誤'
NOT_FOUND_MESSAGE = '找不到指定的 BOM 表'
PLACEHOLDER_IMAGE_URL = 'https://react.semantic-ui.com/images/wireframe/image.png'


@dataclass(frozen=True)
class Category:
    id: str
    name: str


@dataclass(frozen=True)
class BomTable:
    id: str
    table_name: str
    items: tuple[BomItem, ...]
    category: str = ''
    image_url: str = ''
    updated_by: dict[str, Any] | None = None
    updated_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def total_cost(self) -> Decimal:
        return compute_total_cost(self.items)

    @property
    def total_cost_display(self) -> str:
        return format_money(self.total_cost)

    @property
    def preview_url(self) -> str:
        return self.image_url or PLACEHOLDER_IMAGE_URL


@dataclass(frozen=True)
class ResolvedItem:
    item: BomItem
    material_id: str | None
    orphaned: bool


@dataclass(frozen=True)
class UploadedImage:
    data: bytes
    content_type: str | None = None


def bom_table_from_document(document: Document) -> BomTable:
    data = document.data
    return BomTable(
        id=document.id,
        table_name=str(data.get('tableName') or ''),
        items=tuple(BomItem.from_document(item) for item in data.get('items') or [] if isinstance(item, Mapping)),
        category=str(data.get('category') or ''),
        image_url=str(data.get('imageUrl') or ''),
        updated_by=data.get('updatedBy') or None,
        updated_at=data.get('updatedAt'),
        created_at=data.get('createdAt'),
    )


def category_from_document(document: Document) -> Category:
    return Category(id=document.id, name=str(document.data.get('name') or ''))


def resolve_shared_items(items: Sequence[BomItem], materials: Mapping[str, SharedMaterial]) -> list[ResolvedItem]:
    """Pair shared rows with the catalog entry their name points at."""
    resolved: list[ResolvedItem] = []
    for item in items:
        if not item.is_shared:
            resolved.append(ResolvedItem(item=item, material_id=None, orphaned=False))
            continue
        material = materials.get(item.name)
        resolved.append(
            ResolvedItem(
                item=item,
                material_id=material.id if material else None,
                orphaned=material is None,
            )
        )
    return resolved


def search_bom_tables(tables: Sequence[BomTable], term: str | None, category: str | None = None) -> list[BomTable]:
    scoped = [table for table in tables if not category or table.category == category]
    return filter_records(
        scoped,
        term,
        lambda table: (table.table_name, table.category, table.total_cost_display, *(item.name for item in table.items)),
    )


async def fetch_bom_tables(
    store: DocumentStore,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[BomTable]]:
    return await fetch_collection(
        store,
        BOM_TABLES,
        bom_table_from_document,
        notifier=notifier,
        error_message=FETCH_ERROR_MESSAGE,
        liveness=liveness,
    )


async def fetch_categories(
    store: DocumentStore,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[Category]]:
    return await fetch_collection(
        store,
        CATEGORIES,
        category_from_document,
        notifier=notifier,
        error_message=CATEGORY_FETCH_ERROR_MESSAGE,
        liveness=liveness,
    )


async def get_bom_table(store: DocumentStore, table_id: str) -> BomTable | None:
    document = await store.get(BOM_TABLES, table_id)
    if document is None:
        return None
    return bom_table_from_document(document)


def validate_table_name(table_name: str) -> str:
    clean = table_name.strip()
    if not clean:
        raise ValueError('請輸入 BOM 表格名稱')
    return clean


async def save_bom_table(
    store: DocumentStore,
    blobs: BlobStorage,
    *,
    table_id: str,
    table_name: str,
    items: Sequence[BomItem],
    category: str,
    image_url: str,
    image: UploadedImage | None,
    actor: AuthUser,
    create: bool,
) -> str:
    """
    Persist the whole table in one document write and return the image URL.

    A new image is uploaded first so its download URL lands in the same write.
    """
    if image is not None:
        key = bom_image_key(table_id)
        await blobs.upload(key, image.data, content_type=image.content_type)
        image_url = await blobs.download_url(key)

    payload: dict[str, Any] = {
        'tableName': table_name,
        'items': [item.to_document() for item in items],
        'totalCost': to_storage_number(compute_total_cost(items)),
        'category': category,
        'imageUrl': image_url,
        'updatedAt': SERVER_TIMESTAMP,
        'updatedBy': actor.as_actor(),
    }
    if create:
        payload['createdAt'] = SERVER_TIMESTAMP
        payload['createdBy'] = actor.as_actor()
        await store.set(BOM_TABLES, table_id, payload)
    else:
        await store.update(BOM_TABLES, table_id, payload)
    logger.info('Saved BOM table %s with %d items', table_id, len(items))
    return image_url


async def delete_bom_table(store: DocumentStore, table_id: str) -> None:
    await store.delete(BOM_TABLES, table_id)
