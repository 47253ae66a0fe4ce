from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select

from app.config import settings
from app.db import SessionLocal
from app.models import AuthPersistence, WebSession
from app.services import local_state_service
from app.services.identity_provider import AuthUser

AUTH_EXEMPT_PATHS = {'/', '/signin', '/robots.txt'}
STATIC_PREFIXES = ('/static/', '/uploads/')
SIGN_IN_REQUIRED_MESSAGE = '需要登入才能查看此頁面'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def new_session_token() -> str:
    return secrets.token_urlsafe(48)


def create_web_session(
    db,
    token: str,
    user: AuthUser,
    *,
    persistence: AuthPersistence,
    ip: str | None,
    user_agent: str | None,
) -> WebSession:
    web_session = WebSession(
        session_token=token,
        uid=user.uid,
        email=user.email,
        display_name=user.display_name,
        persistence=persistence,
        ip=ip,
        user_agent=user_agent,
        expires_at=_session_expiry(),
    )
    db.add(web_session)
    db.flush()
    return web_session


def revoke_web_session(db, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def load_user_from_token(db, token: str | None) -> AuthUser | None:
    if not token:
        return None

    web_session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not web_session:
        return None

    now = _now()
    if web_session.revoked_at is not None or _as_utc(web_session.expires_at) <= now:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return AuthUser(uid=web_session.uid, email=web_session.email, display_name=web_session.display_name)


def touch_last_activity(db, token: str) -> None:
    local_state_service.set_item(
        db,
        session_token=token,
        key=local_state_service.LAST_ACTIVITY_TIME_KEY,
        value=str(int(_now().timestamp() * 1000)),
    )


def session_cookie_kwargs(persistence: AuthPersistence) -> dict:
    kwargs = {
        'key': settings.session_cookie_name,
        'httponly': True,
        'secure': settings.session_cookie_secure,
        'samesite': settings.session_cookie_samesite,
    }
    if persistence == AuthPersistence.LOCAL:
        kwargs['max_age'] = settings.session_ttl_minutes * 60
    return kwargs


def _is_static(path: str) -> bool:
    return path.startswith(STATIC_PREFIXES)


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        path = request.url.path
        request.state.session_token = None
        request.state.user = None
        if _is_static(path):
            return await call_next(request)

        observer = request.app.state.session_observer
        token = request.cookies.get(settings.session_cookie_name)
        with SessionLocal() as db:
            stored_user = load_user_from_token(db, token)
            if stored_user is not None:
                touch_last_activity(db, token)
            db.commit()

        if stored_user is not None:
            request.state.session_token = token
            observer.restore(token, stored_user)
            view = observer.view(token)
        else:
            if token:
                # Expired, revoked or unknown cookie: drop any view it still holds.
                observer.forget(token)
            view = observer.view(None)
        request.state.session_view = view

        if view.is_loading and request.method == 'GET':
            return request.app.state.templates.TemplateResponse(
                request,
                'loading.html',
                {'refresh_seconds': 1},
            )

        if view.is_authenticated:
            request.state.user = view.user
        elif path not in AUTH_EXEMPT_PATHS:
            request.state.notifier.error(SIGN_IN_REQUIRED_MESSAGE, auto_close_ms=500)
            return RedirectResponse('/signin', status_code=303)

        return await call_next(request)
