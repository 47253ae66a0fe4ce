from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip, get_identity_provider, get_notifier, get_templates
from app.models import AuthPersistence
from app.security.csrf import verify_csrf
from app.security.sessions import (
    create_web_session,
    new_session_token,
    revoke_web_session,
    session_cookie_kwargs,
    touch_last_activity,
)
from app.services.audit_service import log_audit, log_auth_event
from app.services.identity_provider import AuthError, IdentityProvider, auth_error_message
from app.services.notification_service import Notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=['auth'])

SIGN_IN_SUCCESS_MESSAGE = '登入成功！'
SIGN_OUT_ERROR_MESSAGE = '登出失敗，請稍後再試'


def _signin_context(*, email: str = '', remember_me: bool = True, error: str | None = None) -> dict:
    return {'email': email, 'remember_me': remember_me, 'error': error}


@router.get('/signin')
def signin_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    if getattr(request.state, 'user', None):
        return RedirectResponse('/', status_code=303)
    return templates.TemplateResponse(request, 'signin.html', _signin_context())


@router.post('/signin')
async def signin_submit(
    request: Request,
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    email = str(form.get('email', '')).strip()
    password = str(form.get('password', ''))
    remember_me = form.get('remember_me') is not None
    persistence = AuthPersistence.LOCAL if remember_me else AuthPersistence.SESSION
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    token = new_session_token()
    try:
        user = await provider.sign_in(session_key=token, email=email, password=password)
    except AuthError as exc:
        message = auth_error_message(exc.code)
        logger.info('Sign-in failed for %s: %s', email, exc.code)
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason=exc.code,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        notifier.error(message)
        return templates.TemplateResponse(
            request,
            'signin.html',
            _signin_context(email=email, remember_me=remember_me, error=message),
            status_code=401,
        )

    create_web_session(db, token, user, persistence=persistence, ip=ip, user_agent=user_agent)
    touch_last_activity(db, token)
    log_auth_event(
        db,
        attempted_email=email,
        success=True,
        uid=user.uid,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor_uid=user.uid,
        action='AUTH_SIGNIN',
        ip=ip,
        metadata={'email': user.email, 'persistence': persistence.value},
    )
    db.commit()

    notifier.success(SIGN_IN_SUCCESS_MESSAGE, auto_close_ms=1000)
    response = RedirectResponse('/', status_code=303)
    response.set_cookie(value=token, **session_cookie_kwargs(persistence))
    return response


@router.post('/logout')
async def logout(
    request: Request,
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    notifier: Notifier = Depends(get_notifier),
    _: None = Depends(verify_csrf),
):
    observer = request.app.state.session_observer
    user = getattr(request.state, 'user', None)
    token = getattr(request.state, 'session_token', None)
    redirect_to = None
    if token:
        observer.begin_logout(token)
        try:
            await provider.sign_out(session_key=token)
        except AuthError:
            logger.exception('Sign-out failed for session %s', token[:8])
            observer.cancel_logout(token)
            notifier.error(SIGN_OUT_ERROR_MESSAGE)
            return RedirectResponse('/', status_code=303)
        revoke_web_session(db, token)
        redirect_to = observer.take_redirect(token)
        observer.forget(token)

    log_audit(
        db,
        actor_uid=user.uid if user else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = RedirectResponse(redirect_to or '/', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response
