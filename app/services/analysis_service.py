from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from app.services.document_store import EXCEL_ANALYSIS, Document, DocumentStore
from app.services.notification_service import Notifier
from app.services.number_utils import HUNDRED_PERCENT, format_money, parse_optional_number
from app.services.outcomes import Outcome
from app.services.page_state import Liveness, fetch_collection

FETCH_ERROR_MESSAGE = '獲取數據時出錯'
DELETE_SUCCESS_MESSAGE = '數據已成功刪除'
DELETE_ERROR_MESSAGE = '刪除數據時出錯'


@dataclass(frozen=True)
class SavedAnalysis:
    id: str
    file_name: str
    total_orders: int | None
    order_cost_rate: Decimal | None
    created_at: datetime | None

    @property
    def order_cost_rate_display(self) -> str:
        if self.order_cost_rate is None:
            return '-'
        return f'{format_money(self.order_cost_rate * HUNDRED_PERCENT)}%'


def analysis_from_document(document: Document) -> SavedAnalysis:
    data = document.data
    stats = data.get('stats') or {}
    total_orders = parse_optional_number(stats.get('totalOrders'))
    return SavedAnalysis(
        id=document.id,
        file_name=str(data.get('fileName') or ''),
        total_orders=int(total_orders) if total_orders is not None else None,
        order_cost_rate=parse_optional_number(stats.get('orderCostRate')),
        created_at=data.get('createdAt'),
    )


async def fetch_saved_analyses(
    store: DocumentStore,
    *,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> Outcome[list[SavedAnalysis]]:
    return await fetch_collection(
        store,
        EXCEL_ANALYSIS,
        analysis_from_document,
        notifier=notifier,
        error_message=FETCH_ERROR_MESSAGE,
        order_by='createdAt',
        descending=True,
        liveness=liveness,
    )


async def delete_saved_analysis(store: DocumentStore, analysis_id: str) -> None:
    await store.delete(EXCEL_ANALYSIS, analysis_id)
