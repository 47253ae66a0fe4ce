from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

AUTH_INVALID_EMAIL = 'auth/invalid-email'
AUTH_USER_NOT_FOUND = 'auth/user-not-found'
AUTH_WRONG_PASSWORD = 'auth/wrong-password'
AUTH_INVALID_CREDENTIAL = 'auth/invalid-credential'
AUTH_USER_DISABLED = 'auth/user-disabled'
AUTH_NETWORK_FAILED = 'auth/network-request-failed'

AUTH_ERROR_MESSAGES: dict[str, str] = {
    AUTH_INVALID_EMAIL: '信箱格式錯誤',
    AUTH_USER_NOT_FOUND: '此信箱尚未註冊',
    AUTH_WRONG_PASSWORD: '密碼錯誤',
    AUTH_INVALID_CREDENTIAL: '信箱或密碼錯誤',
}
DEFAULT_AUTH_ERROR_MESSAGE = '登入失敗，請稍後再試'
UNKNOWN_DISPLAY_NAME = '未知用戶'


class AuthError(Exception):
    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code


def auth_error_message(code: str | None) -> str:
    return AUTH_ERROR_MESSAGES.get(code or '', DEFAULT_AUTH_ERROR_MESSAGE)


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str
    display_name: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.email

    def as_actor(self) -> dict[str, str]:
        return {
            'uid': self.uid,
            'displayName': self.display_name or UNKNOWN_DISPLAY_NAME,
            'email': self.email,
        }


AuthStateListener = Callable[[str, AuthUser | None], None]


class AuthStateNotifier:
    """Fan-out of auth-state changes keyed by browser session token."""

    def __init__(self) -> None:
        self._listeners: list[AuthStateListener] = []

    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, session_key: str, user: AuthUser | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(session_key, user)
            except Exception:
                logger.exception('Auth state listener failed for session %s', session_key[:8])


class IdentityProvider(Protocol):
    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]: ...

    async def sign_in(self, *, session_key: str, email: str, password: str) -> AuthUser: ...

    async def sign_out(self, *, session_key: str) -> None: ...
