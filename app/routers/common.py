from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.auth import get_current_user, get_session_token
from app.db import get_db
from app.dependencies import get_client_ip, get_document_store, get_notifier
from app.security.csrf import verify_csrf
from app.services.audit_service import log_audit
from app.services.delete_flow import DeleteTarget, load_flow, save_flow
from app.services.document_store import DocumentStore
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier


def abandoned() -> Response:
    """Response for a page whose client went away before its data arrived."""
    return Response(status_code=204)


def parse_page(value: Any) -> int:
    try:
        return max(int(value), 1)
    except (TypeError, ValueError):
        return 1


def register_delete_routes(
    router: APIRouter,
    *,
    list_route: str,
    scope: str,
    delete: Callable[[DocumentStore, str], Awaitable[Any]],
    success_message: str,
    error_message: str,
) -> None:
    """Add delete-intent, delete-confirm and delete-cancel routes under ``list_route``."""

    @router.post(f'{list_route}/delete-intent/{{document_id}}', name=f'{scope}_delete_intent')
    async def delete_intent(
        document_id: str,
        request: Request,
        db: Session = Depends(get_db),
        token: str = Depends(get_session_token),
        _: None = Depends(verify_csrf),
    ):
        form = await request.form()
        flow = load_flow(db, session_token=token, scope=scope)
        flow.request(DeleteTarget(id=document_id, label=str(form.get('label') or '')))
        save_flow(db, session_token=token, flow=flow)
        db.commit()
        return RedirectResponse(list_route, status_code=303)

    @router.post(f'{list_route}/delete-cancel', name=f'{scope}_delete_cancel')
    async def delete_cancel(
        db: Session = Depends(get_db),
        token: str = Depends(get_session_token),
        _: None = Depends(verify_csrf),
    ):
        flow = load_flow(db, session_token=token, scope=scope)
        flow.cancel()
        save_flow(db, session_token=token, flow=flow)
        db.commit()
        return RedirectResponse(list_route, status_code=303)

    @router.post(f'{list_route}/delete-confirm', name=f'{scope}_delete_confirm')
    async def delete_confirm(
        request: Request,
        db: Session = Depends(get_db),
        token: str = Depends(get_session_token),
        user: AuthUser = Depends(get_current_user),
        store: DocumentStore = Depends(get_document_store),
        notifier: Notifier = Depends(get_notifier),
        _: None = Depends(verify_csrf),
    ):
        flow = load_flow(db, session_token=token, scope=scope)
        outcome = await flow.confirm(
            lambda document_id: delete(store, document_id),
            notifier=notifier,
            success_message=success_message,
            error_message=error_message,
        )
        save_flow(db, session_token=token, flow=flow)
        if outcome.ok:
            log_audit(
                db,
                actor_uid=user.uid,
                action='DOCUMENT_DELETE',
                ip=get_client_ip(request),
                collection=scope,
                document_id=outcome.value,
            )
        db.commit()
        # The list route refetches the whole collection.
        return RedirectResponse(list_route, status_code=303)
