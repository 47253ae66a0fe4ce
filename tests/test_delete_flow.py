from __future__ import annotations

import unittest

import portal_support  # noqa: F401
from portal_support import FailingDocumentStore

from app.db import SessionLocal, init_db
from app.services import local_state_service
from app.services.delete_flow import NOTHING_PENDING, DeleteConfirmFlow, DeleteState, DeleteTarget, load_flow, save_flow
from app.services.document_store import SHARED_MATERIALS
from app.services.memory_document_store import MemoryDocumentStore
from app.services.notification_service import ERROR, SUCCESS, Notifier


def _store() -> MemoryDocumentStore:
    return MemoryDocumentStore({SHARED_MATERIALS: {'a': {'name': 'A'}, 'b': {'name': 'B'}}})


class DeleteConfirmFlowTests(unittest.IsolatedAsyncioTestCase):
    async def test_second_intent_replaces_pending_target(self) -> None:
        store = _store()
        flow = DeleteConfirmFlow(SHARED_MATERIALS)
        notifier = Notifier()

        flow.request(DeleteTarget(id='a', label='A'))
        flow.request(DeleteTarget(id='b', label='B'))
        outcome = await flow.confirm(
            lambda document_id: store.delete(SHARED_MATERIALS, document_id),
            notifier=notifier,
            success_message='deleted',
            error_message='failed',
        )

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.value, 'b')
        self.assertIsNotNone(await store.get(SHARED_MATERIALS, 'a'))
        self.assertIsNone(await store.get(SHARED_MATERIALS, 'b'))
        self.assertEqual(flow.state, DeleteState.IDLE)
        self.assertEqual([toast.level for toast in notifier.pending], [SUCCESS])

    async def test_success_triggers_refetch(self) -> None:
        store = _store()
        flow = DeleteConfirmFlow(SHARED_MATERIALS, DeleteTarget(id='a'))
        refetched = []

        async def refetch() -> None:
            refetched.append(len(await store.get_all(SHARED_MATERIALS)))

        await flow.confirm(
            lambda document_id: store.delete(SHARED_MATERIALS, document_id),
            notifier=Notifier(),
            success_message='deleted',
            error_message='failed',
            refetch=refetch,
        )

        self.assertEqual(refetched, [1])

    async def test_failure_reports_and_returns_to_idle(self) -> None:
        store = FailingDocumentStore({SHARED_MATERIALS: {'a': {'name': 'A'}}}, fail_deletes=True)
        flow = DeleteConfirmFlow(SHARED_MATERIALS, DeleteTarget(id='a'))
        notifier = Notifier()
        refetched = []

        async def refetch() -> None:
            refetched.append(True)

        outcome = await flow.confirm(
            lambda document_id: store.delete(SHARED_MATERIALS, document_id),
            notifier=notifier,
            success_message='deleted',
            error_message='failed',
            refetch=refetch,
        )

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.error, 'failed')
        self.assertEqual(flow.state, DeleteState.IDLE)
        self.assertEqual(refetched, [])
        self.assertEqual([(toast.level, toast.message) for toast in notifier.pending], [(ERROR, 'failed')])
        self.assertIsNotNone(await store.get(SHARED_MATERIALS, 'a'))

    async def test_confirm_without_target_does_nothing(self) -> None:
        calls = []

        async def delete(document_id: str) -> None:
            calls.append(document_id)

        outcome = await DeleteConfirmFlow(SHARED_MATERIALS).confirm(
            delete,
            notifier=Notifier(),
            success_message='deleted',
            error_message='failed',
        )

        self.assertEqual(outcome.error, NOTHING_PENDING)
        self.assertEqual(calls, [])

    def test_cancel_clears_target(self) -> None:
        flow = DeleteConfirmFlow(SHARED_MATERIALS, DeleteTarget(id='a'))

        flow.cancel()

        self.assertFalse(flow.is_pending)
        self.assertIsNone(flow.target)


class DeleteFlowPersistenceTests(unittest.TestCase):
    def setUp(self) -> None:
        init_db()
        self.db = SessionLocal()
        local_state_service.clear(self.db, session_token='token-delete')
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_pending_target_survives_between_requests(self) -> None:
        flow = load_flow(self.db, session_token='token-delete', scope=SHARED_MATERIALS)
        flow.request(DeleteTarget(id='a', label='醬油'))
        save_flow(self.db, session_token='token-delete', flow=flow)
        self.db.commit()

        restored = load_flow(self.db, session_token='token-delete', scope=SHARED_MATERIALS)

        self.assertTrue(restored.is_pending)
        self.assertEqual(restored.target, DeleteTarget(id='a', label='醬油'))

    def test_cancelled_flow_is_removed(self) -> None:
        flow = DeleteConfirmFlow(SHARED_MATERIALS, DeleteTarget(id='a'))
        save_flow(self.db, session_token='token-delete', flow=flow)
        flow.cancel()
        save_flow(self.db, session_token='token-delete', flow=flow)
        self.db.commit()

        self.assertFalse(load_flow(self.db, session_token='token-delete', scope=SHARED_MATERIALS).is_pending)


if __name__ == '__main__':
    unittest.main()
