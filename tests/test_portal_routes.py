from __future__ import annotations

import unittest
from unittest.mock import patch

import portal_support  # noqa: F401
from portal_support import ADMIN_EMAIL, ADMIN_PASSWORD, make_user

from fastapi.testclient import TestClient

from app.config import settings
from app.db import SessionLocal
from app.dependencies import get_document_store
from app.main import app
from app.services.bom_service import NOT_FOUND_MESSAGE
from app.services.document_store import BOM_TABLES, PRICING_HISTORY
from app.services.memory_document_store import MemoryDocumentStore
from app.security.sessions import SIGN_IN_REQUIRED_MESSAGE, revoke_web_session


class PortalRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = MemoryDocumentStore.with_demo_data()
        app.dependency_overrides[get_document_store] = lambda: self.store
        delay_patch = patch.object(settings, 'auth_display_delay_seconds', 0)
        delay_patch.start()
        self.addCleanup(delay_patch.stop)
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()

    def _csrf(self) -> str:
        if not self.client.cookies.get('csrf_token'):
            self.client.get('/robots.txt')
        return self.client.cookies.get('csrf_token')

    def _sign_in(self, email: str = ADMIN_EMAIL, password: str = ADMIN_PASSWORD):
        return self.client.post(
            '/signin',
            data={'email': email, 'password': password, 'remember_me': 'on', 'csrf_token': self._csrf()},
            follow_redirects=False,
        )

    def test_unregistered_email_stays_on_signin(self) -> None:
        response = self._sign_in(email='nobody@kindfood.tw')

        self.assertEqual(response.status_code, 401)
        self.assertIn('此信箱尚未註冊', response.text)
        self.assertEqual(response.url.path, '/signin')
        self.assertIsNone(self.client.cookies.get(settings.session_cookie_name))

    def test_sign_in_then_open_protected_page(self) -> None:
        response = self._sign_in()

        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/')
        self.assertTrue(self.client.cookies.get(settings.session_cookie_name))

        home = self.client.get('/')
        self.assertIn('登入成功！', home.text)
        self.assertIn('管理員', home.text)

        bom_list = self.client.get('/bom-table')
        self.assertEqual(bom_list.status_code, 200)
        self.assertIn('滷肉醬', bom_list.text)
        self.assertIn('230.00', bom_list.text)

    def test_signin_and_landing_pages_render(self) -> None:
        signin = self.client.get('/signin')
        landing = self.client.get('/')

        self.assertEqual(signin.status_code, 200)
        self.assertIn('name="email"', signin.text)
        self.assertEqual(landing.status_code, 200)
        self.assertIn('KIND FOOD ERP', landing.text)

    def test_anonymous_request_is_sent_to_signin(self) -> None:
        response = self.client.get('/bom-table', follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/signin')

        signin = self.client.get('/signin')
        self.assertIn(SIGN_IN_REQUIRED_MESSAGE, signin.text)

    def test_missing_bom_table_redirects_home_with_toast(self) -> None:
        self._sign_in()

        response = self.client.get('/edit-bomtable/missing', follow_redirects=False)
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/')

        self.assertIn(NOT_FOUND_MESSAGE, self.client.get('/').text)

    def test_shared_material_list_shows_derived_unit_cost(self) -> None:
        self._sign_in()

        response = self.client.get('/shared-material')

        self.assertIn('醬油', response.text)
        self.assertIn('25.00', response.text)

    def test_edit_bom_table_saves_whole_document(self) -> None:
        self._sign_in()
        form = {
            'csrf_token': self._csrf(),
            'action': 'save',
            'tableName': '滷肉醬 v2',
            'category': '醬料',
            'imageUrl': '',
            'items-0-prevName': '醬油',
            'items-0-prevQuantity': '2',
            'items-0-prevUnitCost': '25.00',
            'items-0-wasShared': '1',
            'items-0-isShared': '1',
            'items-0-name': '醬油',
            'items-0-quantity': '4',
            'items-0-unitCost': '25.00',
        }

        response = self.client.post('/edit-bomtable/bom-braise', data=form, follow_redirects=False)

        self.assertEqual(response.status_code, 303)
        saved = self.store.collections[BOM_TABLES]['bom-braise']
        self.assertEqual(saved['tableName'], '滷肉醬 v2')
        self.assertEqual(saved['totalCost'], 100.0)
        self.assertEqual(saved['updatedBy']['email'], ADMIN_EMAIL)
        self.assertIn('BOM 表修改成功', self.client.get('/bom-table').text)

    def test_delete_requires_confirmation(self) -> None:
        self._sign_in()
        csrf = self._csrf()

        self.client.post('/bom-table/delete-intent/bom-braise', data={'csrf_token': csrf, 'label': '滷肉醬'})
        self.assertIn('bom-braise', self.store.collections[BOM_TABLES])
        self.assertIn('確定要刪除「滷肉醬」嗎', self.client.get('/bom-table').text)

        listing = self.client.post('/bom-table/delete-confirm', data={'csrf_token': csrf})

        self.assertNotIn('bom-braise', self.store.collections[BOM_TABLES])
        self.assertIn('BOM 表已刪除', listing.text)

    def test_applying_saved_scheme_loads_dealer_pricing(self) -> None:
        self._sign_in()
        scheme_id = 'scheme-spring'
        self.store.collections.setdefault(PRICING_HISTORY, {})[scheme_id] = {
            'name': '春季',
            'note': '',
            'pricingData': [
                {'id': 'bom-braise', 'tableName': '滷肉醬', 'totalCost': 230.0, 'dealerPrice': '460'},
                {'id': 'bom-gone', 'tableName': '已刪除', 'totalCost': 10.0, 'dealerPrice': '20'},
            ],
            'createdBy': make_user().as_actor(),
        }

        response = self.client.post(f'/saved-pricing/apply/{scheme_id}', data={'csrf_token': self._csrf()})

        self.assertEqual(response.url.path, '/dealer-pricing')
        self.assertIn('已載入報價方案', response.text)
        self.assertIn('460', response.text)
        self.assertIn('50.00', response.text)
        self.assertNotIn('已刪除', response.text)

    def test_logout_returns_to_landing(self) -> None:
        self._sign_in()

        response = self.client.post('/logout', data={'csrf_token': self._csrf()}, follow_redirects=False)

        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/')
        self.assertEqual(self.client.get('/bom-table', follow_redirects=False).headers['location'], '/signin')

    def test_pages_show_loading_until_sign_in_settles(self) -> None:
        app.state.session_observer.display_delay = 30

        self._sign_in()
        response = self.client.get('/bom-table', follow_redirects=False)

        self.assertEqual(response.status_code, 200)
        self.assertIn('加載中', response.text)
        self.assertNotIn('滷肉醬', response.text)
        self.assertNotIn('管理員', response.text)

    def test_revoked_session_view_is_forgotten(self) -> None:
        self._sign_in()
        token = self.client.cookies.get(settings.session_cookie_name)
        self.assertEqual(self.client.get('/bom-table').status_code, 200)
        observer = app.state.session_observer
        self.assertIn(token, observer.tracked_sessions())

        with SessionLocal() as db:
            revoke_web_session(db, token)
            db.commit()
        response = self.client.get('/bom-table', follow_redirects=False)

        self.assertEqual(response.headers['location'], '/signin')
        self.assertNotIn(token, observer.tracked_sessions())



if __name__ == '__main__':
    unittest.main()
