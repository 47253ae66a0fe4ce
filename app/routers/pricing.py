from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.auth import get_current_user, get_session_token
from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip, get_document_store, get_liveness, get_notifier, get_templates
from app.routers.common import abandoned, register_delete_routes
from app.security.csrf import verify_csrf
from app.services import local_state_service
from app.services.audit_service import log_audit
from app.services.bom_service import fetch_bom_tables
from app.services.delete_flow import load_flow
from app.services.document_store import PRICING_HISTORY, DocumentStore, DocumentStoreError
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.outcomes import attempt
from app.services.page_state import Liveness, PageState
from app.services.pricing_service import (
    APPLY_ERROR_MESSAGE,
    APPLY_SUCCESS_MESSAGE,
    PricingScheme,
    apply_pricing_form,
    build_working_set_from_scheme,
    build_working_set_from_tables,
    delete_pricing_scheme,
    fetch_pricing_schemes,
    get_pricing_scheme,
    rows_from_working_set,
    save_pricing_scheme,
    update_scheme_details,
    validate_scheme_name,
    working_set_with_rows,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=['pricing'])

DEALER_ROUTE = '/dealer-pricing'
SAVED_ROUTE = '/saved-pricing'
SAVE_SUCCESS_MESSAGE = '報價方案已儲存'
SAVE_ERROR_MESSAGE = '儲存報價方案時出錯'
RESET_MESSAGE = '已重新載入 BOM 表'
UPDATE_SUCCESS_MESSAGE = '報價方案已更新'
UPDATE_ERROR_MESSAGE = '更新報價方案時出錯'
DELETE_SUCCESS_MESSAGE = '報價方案已刪除'
DELETE_ERROR_MESSAGE = '刪除報價方案時出錯'


async def _working_set(
    db: Session,
    token: str,
    store: DocumentStore,
    notifier: Notifier,
    liveness: Liveness | None = None,
) -> dict[str, Any]:
    stored = local_state_service.get_json(db, session_token=token, key=local_state_service.CURRENT_PRICING_DATA_KEY)
    if isinstance(stored, dict):
        return stored
    tables = await fetch_bom_tables(store, notifier=notifier, liveness=liveness)
    return build_working_set_from_tables(tables.value or [])


@router.get(DEALER_ROUTE)
async def dealer_pricing_page(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
):
    working = await _working_set(db, token, store, notifier, liveness)
    if not await liveness.check():
        return abandoned()
    return templates.TemplateResponse(
        request,
        'dealer_pricing.html',
        {
            'scheme_id': working.get('id'),
            'name': working.get('name') or '',
            'note': working.get('note') or '',
            'rows': rows_from_working_set(working),
        },
    )


@router.post(DEALER_ROUTE)
async def dealer_pricing_submit(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    user: AuthUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    action = str(form.get('action') or 'recalculate')

    if action == 'reset':
        local_state_service.remove_item(db, session_token=token, key=local_state_service.CURRENT_PRICING_DATA_KEY)
        db.commit()
        notifier.info(RESET_MESSAGE)
        return RedirectResponse(DEALER_ROUTE, status_code=303)

    working = await _working_set(db, token, store, notifier)
    rows = apply_pricing_form(rows_from_working_set(working), form)
    name = str(form.get('name') or '')
    note = str(form.get('note') or '')
    working = {**working_set_with_rows(working, rows), 'name': name, 'note': note}

    if action == 'save':
        try:
            validate_scheme_name(name)
        except ValueError as exc:
            notifier.error(str(exc))
        else:
            outcome = await attempt(
                save_pricing_scheme(store, name=name, note=note, rows=rows, actor=user),
                notifier=notifier,
                error_message=SAVE_ERROR_MESSAGE,
                success_message=SAVE_SUCCESS_MESSAGE,
                context='Saving pricing scheme',
            )
            if outcome.ok:
                working['id'] = outcome.value
                log_audit(
                    db,
                    actor_uid=user.uid,
                    action='PRICING_SCHEME_CREATE',
                    ip=get_client_ip(request),
                    collection=PRICING_HISTORY,
                    document_id=outcome.value,
                    metadata={'name': name.strip(), 'rows': len(rows)},
                )

    local_state_service.set_json(
        db,
        session_token=token,
        key=local_state_service.CURRENT_PRICING_DATA_KEY,
        value=working,
    )
    db.commit()
    return RedirectResponse(DEALER_ROUTE, status_code=303)


@router.get(SAVED_ROUTE)
async def saved_pricing_page(
    request: Request,
    edit: str = '',
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
):
    schemes: PageState[PricingScheme] = PageState(liveness=liveness)
    if not await schemes.load(fetch_pricing_schemes(store, notifier=notifier, liveness=liveness)):
        return abandoned()
    return templates.TemplateResponse(
        request,
        'saved_pricing.html',
        {
            'schemes': schemes.records,
            'editing_id': edit,
            'load_error': schemes.error,
            'delete_flow': load_flow(db, session_token=token, scope=PRICING_HISTORY),
        },
    )


register_delete_routes(
    router,
    list_route=SAVED_ROUTE,
    scope=PRICING_HISTORY,
    delete=delete_pricing_scheme,
    success_message=DELETE_SUCCESS_MESSAGE,
    error_message=DELETE_ERROR_MESSAGE,
)


@router.post(f'{SAVED_ROUTE}/apply/{{scheme_id}}')
async def apply_saved_pricing(
    scheme_id: str,
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    _: None = Depends(verify_csrf),
):
    try:
        scheme = await get_pricing_scheme(store, scheme_id)
        if scheme is None:
            notifier.error(APPLY_ERROR_MESSAGE)
            return RedirectResponse(SAVED_ROUTE, status_code=303)
        working = await build_working_set_from_scheme(
            store,
            scheme,
            keep_unmatched=settings.pricing_keep_unmatched_items,
        )
    except DocumentStoreError as exc:
        logger.warning('Applying pricing scheme %s failed: %s', scheme_id, exc)
        notifier.error(APPLY_ERROR_MESSAGE)
        return RedirectResponse(SAVED_ROUTE, status_code=303)

    local_state_service.set_json(
        db,
        session_token=token,
        key=local_state_service.CURRENT_PRICING_DATA_KEY,
        value=working,
    )
    db.commit()
    notifier.success(APPLY_SUCCESS_MESSAGE)
    return RedirectResponse(DEALER_ROUTE, status_code=303)


@router.post(f'{SAVED_ROUTE}/edit/{{scheme_id}}')
async def edit_saved_pricing(
    scheme_id: str,
    request: Request,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    name = str(form.get('name') or '')
    note = str(form.get('note') or '')
    try:
        validate_scheme_name(name)
    except ValueError as exc:
        notifier.error(str(exc))
        return RedirectResponse(f'{SAVED_ROUTE}?edit={scheme_id}', status_code=303)

    outcome = await attempt(
        update_scheme_details(store, scheme_id, name=name, note=note),
        notifier=notifier,
        error_message=UPDATE_ERROR_MESSAGE,
        success_message=UPDATE_SUCCESS_MESSAGE,
        context=f'Updating pricing scheme {scheme_id}',
    )
    if outcome.ok:
        log_audit(
            db,
            actor_uid=user.uid,
            action='PRICING_SCHEME_UPDATE',
            ip=get_client_ip(request),
            collection=PRICING_HISTORY,
            document_id=scheme_id,
            metadata={'name': name.strip()},
        )
        db.commit()
    return RedirectResponse(SAVED_ROUTE, status_code=303)
