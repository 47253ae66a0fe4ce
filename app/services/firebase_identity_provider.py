from __future__ import annotations

import json
import logging
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.services.identity_provider import (
    AUTH_INVALID_CREDENTIAL,
    AUTH_INVALID_EMAIL,
    AUTH_NETWORK_FAILED,
    AUTH_USER_DISABLED,
    AUTH_USER_NOT_FOUND,
    AUTH_WRONG_PASSWORD,
    AuthError,
    AuthStateNotifier,
    AuthUser,
)

logger = logging.getLogger(__name__)

REST_ERROR_CODES: dict[str, str] = {
    'INVALID_EMAIL': AUTH_INVALID_EMAIL,
    'MISSING_EMAIL': AUTH_INVALID_EMAIL,
    'EMAIL_NOT_FOUND': AUTH_USER_NOT_FOUND,
    'INVALID_PASSWORD': AUTH_WRONG_PASSWORD,
    'MISSING_PASSWORD': AUTH_WRONG_PASSWORD,
    'INVALID_LOGIN_CREDENTIALS': AUTH_INVALID_CREDENTIAL,
    'USER_DISABLED': AUTH_USER_DISABLED,
}


def map_rest_error(message: str | None) -> str:
    # Firebase appends detail after " : ", e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : Access ...".
    key = (message or '').split(':', 1)[0].strip()
    return REST_ERROR_CODES.get(key, f'auth/{key.lower().replace("_", "-")}' if key else 'auth/internal-error')


class FirebaseIdentityProvider(AuthStateNotifier):
    def __init__(self) -> None:
        super().__init__()
        if not settings.firebase_api_key:
            raise ValueError('FIREBASE_API_KEY is required when IDENTITY_PROVIDER=firebase')
        self.base_url = settings.firebase_auth_base_url.rstrip('/')
        self.api_key = settings.firebase_api_key
        self.headers = {'Content-Type': 'application/json'}

    def _post(self, path: str, payload: dict) -> dict:
        data = json.dumps(payload).encode('utf-8')
        req = Request(
            url=f'{self.base_url}{path}?key={self.api_key}',
            data=data,
            headers=self.headers,
            method='POST',
        )
        try:
            with urlopen(req, timeout=settings.firebase_timeout_seconds) as response:
                return json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            try:
                message = json.loads(body).get('error', {}).get('message')
            except ValueError:
                message = None
            raise AuthError(map_rest_error(message), f'Identity API error {exc.code} on {path}: {body}') from exc
        except URLError as exc:
            raise AuthError(AUTH_NETWORK_FAILED, f'Identity API network error on {path}: {exc.reason}') from exc

    async def sign_in(self, *, session_key: str, email: str, password: str) -> AuthUser:
        payload = {'email': email, 'password': password, 'returnSecureToken': True}
        response = await run_in_threadpool(self._post, '/v1/accounts:signInWithPassword', payload)
        user = AuthUser(
            uid=response['localId'],
            email=response.get('email') or email,
            display_name=response.get('displayName') or None,
            id_token=response.get('idToken'),
            refresh_token=response.get('refreshToken'),
        )
        logger.info('Signed in %s', user.email)
        self._notify(session_key, user)
        return user

    async def sign_out(self, *, session_key: str) -> None:
        # ID tokens are short lived and the REST API has no revocation endpoint for end users.
        self._notify(session_key, None)
