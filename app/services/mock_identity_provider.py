from __future__ import annotations

import hashlib
import re

from app.services.identity_provider import (
    AUTH_INVALID_EMAIL,
    AUTH_USER_NOT_FOUND,
    AUTH_WRONG_PASSWORD,
    AuthError,
    AuthStateNotifier,
    AuthUser,
)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def parse_mock_users(raw: str) -> dict[str, tuple[str, str | None]]:
    users: dict[str, tuple[str, str | None]] = {}
    for entry in raw.split(','):
        parts = [part.strip() for part in entry.split(':')]
        if len(parts) < 2 or not parts[0]:
            continue
        display_name = parts[2] if len(parts) > 2 and parts[2] else None
        users[parts[0].lower()] = (parts[1], display_name)
    return users


class MockIdentityProvider(AuthStateNotifier):
    def __init__(self, users: dict[str, tuple[str, str | None]] | None = None) -> None:
        super().__init__()
        self.users = users or {}

    def _uid(self, email: str) -> str:
        return hashlib.sha1(email.encode('utf-8')).hexdigest()[:28]

    async def sign_in(self, *, session_key: str, email: str, password: str) -> AuthUser:
        normalized = email.strip().lower()
        if not EMAIL_RE.match(normalized):
            raise AuthError(AUTH_INVALID_EMAIL)
        account = self.users.get(normalized)
        if account is None:
            raise AuthError(AUTH_USER_NOT_FOUND)
        expected_password, display_name = account
        if password != expected_password:
            raise AuthError(AUTH_WRONG_PASSWORD)

        user = AuthUser(uid=self._uid(normalized), email=normalized, display_name=display_name)
        self._notify(session_key, user)
        return user

    async def sign_out(self, *, session_key: str) -> None:
        self._notify(session_key, None)
