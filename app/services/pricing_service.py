from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from app.services.bom_service import BomTable, bom_table_from_document
from app.services.document_store import BOM_TABLES, PRICING_HISTORY, SERVER_TIMESTAMP, Document, DocumentStore
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.number_utils import HUNDRED_PERCENT, ZERO, format_money, parse_number, parse_optional_number, to_storage_number
from app.services.outcomes import Outcome
from app.services.page_state import Liveness, fetch_collection

logger = logging.getLogger(__name__)

FETCH_ERROR_MESSAGE = '獲取歷史報價資料時出錯'
APPLY_SUCCESS_MESSAGE = '已載入報價方案'
APPLY_ERROR_MESSAGE = '載入報價方案時發生錯誤'

PRICE_FIELDS = ('dealerPrice', 'specialPrice', 'bottomPrice')
MARGIN_FIELDS = {'dealerPrice': 'dealerMargin', 'specialPrice': 'specialMargin', 'bottomPrice': 'bottomMargin'}
PRICING_FIELDS = (
    'dealerPrice',
    'specialPrice',
    'bottomPrice',
    'dealerMargin',
    'specialMargin',
    'bottomMargin',
    'logisticsCostRate',
    'totalCostWithLogistics',
)
PRICING_INPUT_RE = re.compile(r'^pricing-(\d+)-(logisticsCostRate|dealerPrice|specialPrice|bottomPrice)$')


@dataclass(frozen=True)
class PricingScheme:
    id: str
    name: str
    note: str
    pricing_data: list[dict[str, Any]]
    created_by: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def created_by_label(self) -> str:
        return str(self.created_by.get('displayName') or self.created_by.get('email') or '-')


def scheme_from_document(document: Document) -> PricingScheme:
    data = document.data
    pricing_data = [item for item in data.get('pricingData') or [] if isinstance(item, dict)]
    return PricingScheme(
        id=document.id,
        name=str(data.get('name') or ''),
        note=str(data.get('note') or ''),
        pricing_data=pricing_data,
        created_by=data.get('createdBy') or {},
        created_at=data.get('createdAt'),
        updated_at=data.get('updatedAt'),
    )


async def fetch_pricing_schemes(
    store: DocumentStore,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[PricingScheme]]:
    return await fetch_collection(
        store,
        PRICING_HISTORY,
        scheme_from_document,
        notifier=notifier,
        error_message=FETCH_ERROR_MESSAGE,
        order_by='createdAt',
        descending=True,
        liveness=liveness,
    )


async def get_pricing_scheme(store: DocumentStore, scheme_id: str) -> PricingScheme | None:
    document = await store.get(PRICING_HISTORY, scheme_id)
    if document is None:
        return None
    return scheme_from_document(document)


def _blank_if_missing(value: Any) -> Any:
    # Numeric zero and NaN blank out with missing values; a saved "0" string is kept.
    if value is None or value is False or value == '':
        return ''
    if isinstance(value, (int, float, Decimal)) and (value == 0 or value != value):
        return ''
    return value


def merge_saved_pricing(saved: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(saved)
    for field in PRICING_FIELDS:
        merged[field] = _blank_if_missing(saved.get(field))
    return merged


def blank_pricing_row(table: BomTable) -> dict[str, Any]:
    row: dict[str, Any] = {
        'id': table.id,
        'tableName': table.table_name,
        'category': table.category,
        'totalCost': to_storage_number(table.total_cost),
    }
    for field in PRICING_FIELDS:
        row[field] = ''
    return row


def apply_pricing_scheme(
    pricing_data: Sequence[Mapping[str, Any]],
    live_tables: Sequence[BomTable],
    *,
    keep_unmatched: bool = False,
) -> list[dict[str, Any]]:
    """
    Join a saved scheme onto the live BOM tables by document id.

    The live collection drives the result: a saved row whose table has since
    been deleted never comes back. Live tables without a saved row are dropped
    unless ``keep_unmatched`` is set, in which case they carry blank pricing.
    """
    saved_by_id: dict[str, Mapping[str, Any]] = {}
    for saved in pricing_data:
        saved_id = saved.get('id')
        if saved_id is not None:
            saved_by_id.setdefault(str(saved_id), saved)

    rows: list[dict[str, Any]] = []
    for table in live_tables:
        saved = saved_by_id.get(table.id)
        if saved is not None:
            rows.append(merge_saved_pricing(saved))
        elif keep_unmatched:
            rows.append(blank_pricing_row(table))
    return rows


async def build_working_set_from_scheme(
    store: DocumentStore,
    scheme: PricingScheme,
    *,
    keep_unmatched: bool = False,
) -> dict[str, Any]:
    documents = await store.get_all(BOM_TABLES)
    live_tables = [bom_table_from_document(document) for document in documents]
    return {
        'id': scheme.id,
        'pricingData': apply_pricing_scheme(scheme.pricing_data, live_tables, keep_unmatched=keep_unmatched),
        'name': scheme.name,
        'note': scheme.note or '',
    }


def build_working_set_from_tables(tables: Sequence[BomTable]) -> dict[str, Any]:
    return {
        'id': None,
        'pricingData': [blank_pricing_row(table) for table in tables],
        'name': '',
        'note': '',
    }


def validate_scheme_name(name: str) -> str:
    clean = name.strip()
    if not clean:
        raise ValueError('請輸入方案名稱')
    return clean


async def update_scheme_details(store: DocumentStore, scheme_id: str, *, name: str, note: str) -> None:
    await store.update(
        PRICING_HISTORY,
        scheme_id,
        {
            'name': validate_scheme_name(name),
            'note': note.strip(),
            'updatedAt': SERVER_TIMESTAMP,
        },
    )


async def delete_pricing_scheme(store: DocumentStore, scheme_id: str) -> None:
    await store.delete(PRICING_HISTORY, scheme_id)


def compute_total_cost_with_logistics(total_cost: Decimal, logistics_cost_rate: Any) -> Decimal:
    return total_cost * (1 + parse_number(logistics_cost_rate) / HUNDRED_PERCENT)


def compute_margin(price: Any, cost: Decimal) -> Decimal | None:
    parsed = parse_optional_number(price)
    if parsed is None or parsed == ZERO:
        return None
    return (parsed - cost) / parsed * HUNDRED_PERCENT


@dataclass(frozen=True)
class PricingRow:
    id: str
    table_name: str
    category: str
    total_cost: Decimal
    logistics_cost_rate: str = ''
    dealer_price: str = ''
    special_price: str = ''
    bottom_price: str = ''

    @classmethod
    def from_working_item(cls, item: Mapping[str, Any]) -> 'PricingRow':
        return cls(
            id=str(item.get('id') or ''),
            table_name=str(item.get('tableName') or ''),
            category=str(item.get('category') or ''),
            total_cost=parse_number(item.get('totalCost')),
            logistics_cost_rate=_text(item.get('logisticsCostRate')),
            dealer_price=_text(item.get('dealerPrice')),
            special_price=_text(item.get('specialPrice')),
            bottom_price=_text(item.get('bottomPrice')),
        )

    @property
    def total_cost_with_logistics(self) -> Decimal:
        return compute_total_cost_with_logistics(self.total_cost, self.logistics_cost_rate)

    def price(self, field: str) -> str:
        return {'dealerPrice': self.dealer_price, 'specialPrice': self.special_price, 'bottomPrice': self.bottom_price}[field]

    def margin(self, price_field: str) -> Decimal | None:
        return compute_margin(self.price(price_field), self.total_cost_with_logistics)

    def margin_display(self, price_field: str) -> str:
        return format_money(self.margin(price_field))

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            'id': self.id,
            'tableName': self.table_name,
            'category': self.category,
            'totalCost': to_storage_number(self.total_cost),
            'logisticsCostRate': self.logistics_cost_rate,
            'totalCostWithLogistics': format_money(self.total_cost_with_logistics),
        }
        for field in PRICE_FIELDS:
            document[field] = self.price(field)
            document[MARGIN_FIELDS[field]] = self.margin_display(field)
        return document


def _text(value: Any) -> str:
    return '' if value is None else str(value)


def rows_from_working_set(working_set: Mapping[str, Any]) -> list[PricingRow]:
    return [PricingRow.from_working_item(item) for item in working_set.get('pricingData') or [] if isinstance(item, Mapping)]


def apply_pricing_form(rows: Sequence[PricingRow], form: Mapping[str, Any]) -> list[PricingRow]:
    updated = list(rows)
    for key in form.keys():
        match = PRICING_INPUT_RE.match(key)
        if not match:
            continue
        index = int(match.group(1))
        if index >= len(updated):
            continue
        value = str(form.get(key) or '').strip()
        attribute = {
            'logisticsCostRate': 'logistics_cost_rate',
            'dealerPrice': 'dealer_price',
            'specialPrice': 'special_price',
            'bottomPrice': 'bottom_price',
        }[match.group(2)]
        updated[index] = replace(updated[index], **{attribute: value})
    return updated


def working_set_with_rows(working_set: Mapping[str, Any], rows: Sequence[PricingRow]) -> dict[str, Any]:
    return {**working_set, 'pricingData': [row.to_document() for row in rows]}


async def save_pricing_scheme(
    store: DocumentStore,
    *,
    name: str,
    note: str,
    rows: Sequence[PricingRow],
    actor: AuthUser,
) -> str:
    scheme_id = await store.add(
        PRICING_HISTORY,
        {
            'name': validate_scheme_name(name),
            'note': note.strip(),
            'pricingData': [row.to_document() for row in rows],
            'createdBy': actor.as_actor(),
            'createdAt': SERVER_TIMESTAMP,
        },
    )
    logger.info('Saved pricing scheme %s with %d rows', scheme_id, len(rows))
    return scheme_id
