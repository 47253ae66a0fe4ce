from __future__ import annotations

import unittest
from datetime import datetime, timezone

import portal_support  # noqa: F401
from portal_support import FailingDocumentStore

from app.services.analysis_service import (
    FETCH_ERROR_MESSAGE,
    analysis_from_document,
    delete_saved_analysis,
    fetch_saved_analyses,
)
from app.services.document_store import EXCEL_ANALYSIS, Document
from app.services.memory_document_store import MemoryDocumentStore
from app.services.notification_service import Notifier


class SavedAnalysisTests(unittest.TestCase):
    def test_order_cost_rate_is_shown_as_percent(self) -> None:
        analysis = analysis_from_document(
            Document(
                id='a1',
                data={'fileName': 'orders.xlsx', 'stats': {'totalOrders': 42, 'orderCostRate': 0.4123}},
            )
        )

        self.assertEqual(analysis.file_name, 'orders.xlsx')
        self.assertEqual(analysis.total_orders, 42)
        self.assertEqual(analysis.order_cost_rate_display, '41.23%')

    def test_missing_stats_show_placeholder(self) -> None:
        analysis = analysis_from_document(Document(id='a1', data={'fileName': 'empty.xlsx'}))

        self.assertIsNone(analysis.total_orders)
        self.assertEqual(analysis.order_cost_rate_display, '-')


class SavedAnalysisStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_newest_analysis_first_and_delete(self) -> None:
        store = MemoryDocumentStore(
            {
                EXCEL_ANALYSIS: {
                    'old': {'fileName': 'jan.xlsx', 'createdAt': datetime(2024, 1, 5, tzinfo=timezone.utc)},
                    'new': {'fileName': 'feb.xlsx', 'createdAt': datetime(2024, 2, 5, tzinfo=timezone.utc)},
                }
            }
        )

        outcome = await fetch_saved_analyses(store, notifier=Notifier())
        self.assertEqual([analysis.id for analysis in outcome.value], ['new', 'old'])

        await delete_saved_analysis(store, 'old')
        outcome = await fetch_saved_analyses(store, notifier=Notifier())
        self.assertEqual([analysis.id for analysis in outcome.value], ['new'])

    async def test_fetch_failure_yields_empty_list_and_toast(self) -> None:
        store = FailingDocumentStore(fail_reads=True)
        notifier = Notifier()

        outcome = await fetch_saved_analyses(store, notifier=notifier)

        self.assertEqual(outcome.value, [])
        self.assertEqual([toast.message for toast in notifier.pending], [FETCH_ERROR_MESSAGE])


if __name__ == '__main__':
    unittest.main()
