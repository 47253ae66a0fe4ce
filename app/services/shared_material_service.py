from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from app.services.document_store import (
    HISTORY_SUBCOLLECTION,
    SERVER_TIMESTAMP,
    SHARED_MATERIALS,
    BatchOperation,
    Document,
    DocumentStore,
    WriteOperation,
    subcollection_path,
)
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.number_utils import format_money, format_plain, parse_optional_number, to_storage_number
from app.services.outcomes import Outcome
from app.services.page_state import Liveness, fetch_collection
from app.services.sort_utils import filter_records

FETCH_ERROR_MESSAGE = '獲取共用料時發生錯誤'
HISTORY_FETCH_ERROR_MESSAGE = '獲取歷史記錄時發生錯誤'
NOT_FOUND_MESSAGE = '找不到指定的共用料'


@dataclass(frozen=True)
class SharedMaterial:
    id: str
    name: str
    purchase_unit_cost: Any
    product_unit: Any
    unit_cost: Decimal | None
    created_at: datetime | None = None
    last_updated: datetime | None = None

    @property
    def unit_cost_display(self) -> str:
        return format_money(self.unit_cost)

    @property
    def purchase_unit_cost_display(self) -> str:
        return format_plain(self.purchase_unit_cost)

    @property
    def product_unit_display(self) -> str:
        return format_plain(self.product_unit)


@dataclass(frozen=True)
class MaterialHistoryEntry:
    id: str
    previous: dict[str, Any] | None
    current: dict[str, Any]
    updated_by: dict[str, Any]
    updated_at: datetime | None


def derive_unit_cost(purchase_unit_cost: Any, product_unit: Any, fallback: Any = None) -> Decimal | None:
    purchase = parse_optional_number(purchase_unit_cost)
    unit = parse_optional_number(product_unit)
    if purchase is None or unit is None or unit == 0:
        return parse_optional_number(fallback)
    return purchase / unit


def material_from_document(document: Document) -> SharedMaterial:
    data = document.data
    return SharedMaterial(
        id=document.id,
        name=str(data.get('name') or ''),
        purchase_unit_cost=data.get('purchaseUnitCost'),
        product_unit=data.get('productUnit'),
        unit_cost=derive_unit_cost(data.get('purchaseUnitCost'), data.get('productUnit'), data.get('unitCost')),
        created_at=data.get('createdAt'),
        last_updated=data.get('lastUpdated') or None,
    )


def history_entry_from_document(document: Document) -> MaterialHistoryEntry:
    data = document.data
    return MaterialHistoryEntry(
        id=document.id,
        previous=data.get('previous') or None,
        current=data.get('current') or {},
        updated_by=data.get('updatedBy') or {},
        updated_at=data.get('updatedAt'),
    )


def materials_by_name(materials: list[SharedMaterial]) -> dict[str, SharedMaterial]:
    # Later duplicates win, matching a dropdown that lists every document.
    return {material.name: material for material in materials}


def search_materials(materials: list[SharedMaterial], term: str | None) -> list[SharedMaterial]:
    return filter_records(
        materials,
        term,
        lambda material: (
            material.name,
            material.purchase_unit_cost_display,
            material.product_unit_display,
            material.unit_cost_display,
        ),
    )


async def fetch_shared_materials(
    store: DocumentStore,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[SharedMaterial]]:
    return await fetch_collection(
        store,
        SHARED_MATERIALS,
        material_from_document,
        notifier=notifier,
        error_message=FETCH_ERROR_MESSAGE,
        liveness=liveness,
    )


async def get_shared_material(store: DocumentStore, material_id: str) -> SharedMaterial | None:
    document = await store.get(SHARED_MATERIALS, material_id)
    if document is None:
        return None
    return material_from_document(document)


def validate_material_form(*, name: str, purchase_unit_cost: str, product_unit: str) -> dict[str, Any]:
    clean_name = name.strip()
    if not clean_name:
        raise ValueError('請輸入共用料名稱')
    purchase = parse_optional_number(purchase_unit_cost)
    if purchase is None or purchase < 0:
        raise ValueError('進貨單位成本必須為非負數')
    unit = parse_optional_number(product_unit)
    if unit is None or unit <= 0:
        raise ValueError('成品單位必須大於 0')
    return {
        'name': clean_name,
        'purchaseUnitCost': float(purchase),
        'productUnit': float(unit),
    }


def _snapshot(values: dict[str, Any]) -> dict[str, Any]:
    unit_cost = derive_unit_cost(values.get('purchaseUnitCost'), values.get('productUnit'))
    return {
        'name': values.get('name'),
        'purchaseUnitCost': values.get('purchaseUnitCost'),
        'productUnit': values.get('productUnit'),
        'unitCost': to_storage_number(unit_cost) if unit_cost is not None else None,
    }


def _history_write(
    store: DocumentStore,
    material_id: str,
    *,
    previous: dict[str, Any] | None,
    values: dict[str, Any],
    actor: AuthUser,
) -> WriteOperation:
    history_path = subcollection_path(SHARED_MATERIALS, material_id, HISTORY_SUBCOLLECTION)
    return WriteOperation(
        BatchOperation.SET,
        history_path,
        store.new_id(history_path),
        {
            'previous': previous,
            'current': _snapshot(values),
            'updatedBy': actor.as_actor(),
            'updatedAt': SERVER_TIMESTAMP,
        },
    )


async def create_shared_material(store: DocumentStore, *, values: dict[str, Any], actor: AuthUser) -> str:
    material_id = store.new_id(SHARED_MATERIALS)
    await store.write_batch(
        [
            WriteOperation(
                BatchOperation.SET,
                SHARED_MATERIALS,
                material_id,
                {
                    **values,
                    'createdAt': SERVER_TIMESTAMP,
                    'createdBy': actor.as_actor(),
                },
            ),
            _history_write(store, material_id, previous=None, values=values, actor=actor),
        ]
    )
    return material_id


async def update_shared_material(
    store: DocumentStore,
    *,
    material: SharedMaterial,
    values: dict[str, Any],
    actor: AuthUser,
) -> None:
    previous = _snapshot(
        {
            'name': material.name,
            'purchaseUnitCost': material.purchase_unit_cost,
            'productUnit': material.product_unit,
        }
    )
    await store.write_batch(
        [
            WriteOperation(
                BatchOperation.UPDATE,
                SHARED_MATERIALS,
                material.id,
                {
                    **values,
                    'lastUpdated': SERVER_TIMESTAMP,
                    'updatedBy': actor.as_actor(),
                },
            ),
            _history_write(store, material.id, previous=previous, values=values, actor=actor),
        ]
    )



async def delete_shared_material(store: DocumentStore, material_id: str) -> None:
    await store.delete(SHARED_MATERIALS, material_id)


async def fetch_material_history(
    store: DocumentStore,
    material_id: str,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[MaterialHistoryEntry]]:
    return await fetch_collection(
        store,
        subcollection_path(SHARED_MATERIALS, material_id, HISTORY_SUBCOLLECTION),
        history_entry_from_document,
        notifier=notifier,
        error_message=HISTORY_FETCH_ERROR_MESSAGE,
        order_by='updatedAt',
        descending=True,
        liveness=liveness,
    )
