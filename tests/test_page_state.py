from __future__ import annotations

import asyncio
import unittest

import portal_support  # noqa: F401
from portal_support import FailingDocumentStore

from app.services.document_store import SHARED_MATERIALS
from app.services.notification_service import Notifier
from app.services.outcomes import Outcome
from app.services.page_state import Liveness, PageState
from app.services.shared_material_service import FETCH_ERROR_MESSAGE, fetch_shared_materials


class PageStateTests(unittest.IsolatedAsyncioTestCase):
    async def test_results_applied_while_alive(self) -> None:
        state: PageState[int] = PageState()

        applied = await state.load(asyncio.sleep(0, result=Outcome.success([1, 2])))

        self.assertTrue(applied)
        self.assertEqual(state.records, [1, 2])
        self.assertFalse(state.is_loading)

    async def test_cancelled_mid_fetch_does_not_update(self) -> None:
        liveness = Liveness()
        state: PageState[int] = PageState(liveness=liveness)

        async def slow_fetch() -> Outcome[list[int]]:
            liveness.cancel()
            return Outcome.success([1])

        applied = await state.load(slow_fetch())

        self.assertFalse(applied)
        self.assertEqual(state.records, [])
        self.assertTrue(state.is_loading)

    async def test_disconnected_client_cancels(self) -> None:
        async def is_disconnected() -> bool:
            return True

        liveness = Liveness(is_disconnected)

        self.assertFalse(await liveness.check())
        self.assertFalse(liveness.alive)

    async def test_failed_fetch_on_dead_page_is_silent(self) -> None:
        store = FailingDocumentStore(fail_reads=True)
        liveness = Liveness()
        liveness.cancel()
        notifier = Notifier()

        outcome = await fetch_shared_materials(store, notifier=notifier, liveness=liveness)

        self.assertEqual(outcome.error, FETCH_ERROR_MESSAGE)
        self.assertEqual(notifier.pending, [])

    async def test_failed_fetch_on_live_page_renders_empty(self) -> None:
        store = FailingDocumentStore({SHARED_MATERIALS: {'a': {'name': 'A'}}}, fail_reads=True)
        notifier = Notifier()
        state = PageState()

        await state.load(fetch_shared_materials(store, notifier=notifier, liveness=state.liveness))

        self.assertEqual(state.records, [])
        self.assertEqual(state.error, FETCH_ERROR_MESSAGE)
        self.assertEqual(len(notifier.pending), 1)


if __name__ == '__main__':
    unittest.main()
