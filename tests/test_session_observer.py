from __future__ import annotations

import asyncio
import unittest

import portal_support  # noqa: F401
from portal_support import ADMIN_EMAIL, ADMIN_PASSWORD

from app.security.session_observer import SessionObserver
from app.services.mock_identity_provider import MockIdentityProvider


def _provider() -> MockIdentityProvider:
    return MockIdentityProvider({ADMIN_EMAIL: (ADMIN_PASSWORD, '管理員')})


class SessionObserverTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.provider = _provider()
        self.observer = SessionObserver(self.provider, display_delay=0.05)
        self.observer.start()

    async def asyncTearDown(self) -> None:
        self.observer.stop()

    async def test_sign_in_is_exposed_after_display_delay(self) -> None:
        await self.provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)

        view = self.observer.view('s1')
        self.assertTrue(view.is_loading)
        self.assertFalse(view.is_authenticated)
        self.assertTrue(self.observer.has_pending_timer('s1'))

        await asyncio.sleep(0.1)

        self.assertFalse(view.is_loading)
        self.assertEqual(view.user.email, ADMIN_EMAIL)
        self.assertFalse(self.observer.has_pending_timer('s1'))

    async def test_new_notification_cancels_previous_timer(self) -> None:
        await self.provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        await self.provider.sign_out(session_key='s1')

        await asyncio.sleep(0.1)

        view = self.observer.view('s1')
        self.assertIsNone(view.user)
        self.assertFalse(view.is_loading)

    async def test_sign_out_during_logout_redirects_to_landing(self) -> None:
        await self.provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        await asyncio.sleep(0.1)

        self.observer.begin_logout('s1')
        await self.provider.sign_out(session_key='s1')

        self.assertEqual(self.observer.take_redirect('s1'), '/')
        self.assertIsNone(self.observer.take_redirect('s1'))
        self.assertFalse(self.observer.view('s1').is_logging_out)

    async def test_sign_out_without_logout_stays(self) -> None:
        await self.provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        await asyncio.sleep(0.1)

        await self.provider.sign_out(session_key='s1')

        self.assertIsNone(self.observer.take_redirect('s1'))
        self.assertIsNone(self.observer.view('s1').user)

    async def test_stop_cancels_timers_and_ignores_late_updates(self) -> None:
        await self.provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)

        self.observer.stop()
        await asyncio.sleep(0.1)
        await self.provider.sign_in(session_key='s2', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)

        self.assertIsNone(self.observer.view('s1').user)
        self.assertTrue(self.observer.view('s1').is_loading)
        self.assertFalse(self.observer.has_pending_timer('s1'))
        self.assertFalse(self.observer.alive)
        self.assertIsNone(self.observer.view('s2').user)

    async def test_restored_session_skips_delay(self) -> None:
        user = await _provider().sign_in(session_key='other', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)

        view = self.observer.restore('s3', user)

        self.assertTrue(view.is_authenticated)

    async def test_zero_delay_settles_immediately(self) -> None:
        provider = _provider()
        observer = SessionObserver(provider, display_delay=0)
        observer.start()
        try:
            await provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
            self.assertTrue(observer.view('s1').is_authenticated)
        finally:
            observer.stop()

    async def test_idle_views_are_evicted_after_session_ttl(self) -> None:
        now = [1000.0]
        user = await _provider().sign_in(session_key='other', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        observer = SessionObserver(_provider(), display_delay=0, idle_ttl=600, clock=lambda: now[0])
        observer.restore('old', user)
        now[0] += 300
        observer.restore('recent', user)

        now[0] += 400
        observer.restore('new', user)

        self.assertEqual(observer.tracked_sessions(), {'recent', 'new'})

    async def test_view_with_pending_sign_in_is_kept(self) -> None:
        now = [0.0]
        provider = _provider()
        observer = SessionObserver(provider, display_delay=30, idle_ttl=10, clock=lambda: now[0])
        observer.start()
        try:
            await provider.sign_in(session_key='s1', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
            now[0] += 60
            observer.sweep(force=True)

            self.assertIn('s1', observer.tracked_sessions())
        finally:
            observer.stop()

    async def test_forget_drops_the_view(self) -> None:
        user = await _provider().sign_in(session_key='other', email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        self.observer.restore('s1', user)

        self.observer.forget('s1')

        self.assertEqual(self.observer.tracked_sessions(), set())
        self.assertFalse(self.observer.view('s1').is_authenticated)



if __name__ == '__main__':
    unittest.main()
