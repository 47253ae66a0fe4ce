from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.auth import get_current_user, get_session_token
from app.config import settings
from app.db import get_db
from app.dependencies import get_client_ip, get_document_store, get_liveness, get_notifier, get_templates
from app.routers.common import abandoned, parse_page, register_delete_routes
from app.security.csrf import verify_csrf
from app.services.audit_service import log_audit
from app.services.delete_flow import load_flow
from app.services.document_store import SHARED_MATERIALS, DocumentStore, DocumentStoreError
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.outcomes import attempt
from app.services.page_state import Liveness, PageState
from app.services.shared_material_service import (
    NOT_FOUND_MESSAGE,
    MaterialHistoryEntry,
    SharedMaterial,
    create_shared_material,
    delete_shared_material,
    fetch_material_history,
    fetch_shared_materials,
    get_shared_material,
    search_materials,
    update_shared_material,
    validate_material_form,
)
from app.services.sort_utils import paginate, sort_records

router = APIRouter(tags=['shared-materials'])

LIST_ROUTE = '/shared-material'
LOAD_ERROR_MESSAGE = '獲取共用料時發生錯誤'
CREATE_SUCCESS_MESSAGE = '共用料新增成功'
CREATE_ERROR_MESSAGE = '新增共用料時發生錯誤'
UPDATE_SUCCESS_MESSAGE = '共用料更新成功'
UPDATE_ERROR_MESSAGE = '更新共用料時發生錯誤'
DELETE_SUCCESS_MESSAGE = '共用料已成功刪除'
DELETE_ERROR_MESSAGE = '刪除共用料時發生錯誤'

SORT_KEYS = {
    'name': lambda material: material.name,
    'purchaseUnitCost': lambda material: material.purchase_unit_cost,
    'productUnit': lambda material: material.product_unit,
    'unitCost': lambda material: material.unit_cost,
    'lastUpdated': lambda material: material.last_updated,
}


@router.get(LIST_ROUTE)
async def shared_material_list(
    request: Request,
    q: str = '',
    sort: str = 'name',
    order: str = 'asc',
    page: str = '1',
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
):
    materials: PageState[SharedMaterial] = PageState(liveness=liveness)
    if not await materials.load(fetch_shared_materials(store, notifier=notifier, liveness=liveness)):
        return abandoned()

    matching = search_materials(materials.records, q)
    ordered = sort_records(matching, SORT_KEYS.get(sort, SORT_KEYS['name']), descending=order == 'desc')
    return templates.TemplateResponse(
        request,
        'shared_material_list.html',
        {
            'page': paginate(ordered, page=parse_page(page), size=settings.page_size),
            'query': q,
            'sort': sort,
            'order': order,
            'load_error': materials.error,
            'delete_flow': load_flow(db, session_token=token, scope=SHARED_MATERIALS),
        },
    )


register_delete_routes(
    router,
    list_route=LIST_ROUTE,
    scope=SHARED_MATERIALS,
    delete=delete_shared_material,
    success_message=DELETE_SUCCESS_MESSAGE,
    error_message=DELETE_ERROR_MESSAGE,
)


def _render_form(
    request: Request,
    templates: Jinja2Templates,
    *,
    material_id: str | None,
    values: dict,
    error: str | None = None,
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        'shared_material_form.html',
        {
            'material_id': material_id,
            'values': values,
            'error': error,
        },
        status_code=status_code,
    )


def _form_values(form) -> dict:
    return {
        'name': str(form.get('name') or ''),
        'purchaseUnitCost': str(form.get('purchaseUnitCost') or ''),
        'productUnit': str(form.get('productUnit') or ''),
    }


async def _load_material(store: DocumentStore, material_id: str, notifier: Notifier) -> SharedMaterial | None:
    try:
        material = await get_shared_material(store, material_id)
    except DocumentStoreError:
        notifier.error(LOAD_ERROR_MESSAGE)
        return None
    if material is None:
        notifier.error(NOT_FOUND_MESSAGE)
    return material


@router.get('/new-shared-material')
def new_shared_material_page(
    request: Request,
    templates: Jinja2Templates = Depends(get_templates),
    _: AuthUser = Depends(get_current_user),
):
    return _render_form(
        request,
        templates,
        material_id=None,
        values={'name': '', 'purchaseUnitCost': '', 'productUnit': ''},
    )


@router.post('/new-shared-material')
async def new_shared_material_submit(
    request: Request,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    user: AuthUser = Depends(get_current_user),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    submitted = _form_values(form)
    try:
        values = validate_material_form(
            name=submitted['name'],
            purchase_unit_cost=submitted['purchaseUnitCost'],
            product_unit=submitted['productUnit'],
        )
    except ValueError as exc:
        return _render_form(request, templates, material_id=None, values=submitted, error=str(exc), status_code=400)

    outcome = await attempt(
        create_shared_material(store, values=values, actor=user),
        notifier=notifier,
        error_message=CREATE_ERROR_MESSAGE,
        success_message=CREATE_SUCCESS_MESSAGE,
        context='Creating shared material',
    )
    if not outcome.ok:
        return _render_form(request, templates, material_id=None, values=submitted)

    log_audit(
        db,
        actor_uid=user.uid,
        action='SHARED_MATERIAL_CREATE',
        ip=get_client_ip(request),
        collection=SHARED_MATERIALS,
        document_id=outcome.value,
        metadata={'name': values['name']},
    )
    db.commit()
    return RedirectResponse(LIST_ROUTE, status_code=303)


@router.get('/edit-shared-material/{material_id}')
async def edit_shared_material_page(
    material_id: str,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    _: AuthUser = Depends(get_current_user),
):
    material = await _load_material(store, material_id, notifier)
    if material is None:
        return RedirectResponse(LIST_ROUTE, status_code=303)
    return _render_form(
        request,
        templates,
        material_id=material.id,
        values={
            'name': material.name,
            'purchaseUnitCost': material.purchase_unit_cost_display,
            'productUnit': material.product_unit_display,
        },
    )


@router.post('/edit-shared-material/{material_id}')
async def edit_shared_material_submit(
    material_id: str,
    request: Request,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    user: AuthUser = Depends(get_current_user),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    submitted = _form_values(form)
    try:
        values = validate_material_form(
            name=submitted['name'],
            purchase_unit_cost=submitted['purchaseUnitCost'],
            product_unit=submitted['productUnit'],
        )
    except ValueError as exc:
        return _render_form(request, templates, material_id=material_id, values=submitted, error=str(exc), status_code=400)

    material = await _load_material(store, material_id, notifier)
    if material is None:
        return RedirectResponse(LIST_ROUTE, status_code=303)

    outcome = await attempt(
        update_shared_material(store, material=material, values=values, actor=user),
        notifier=notifier,
        error_message=UPDATE_ERROR_MESSAGE,
        success_message=UPDATE_SUCCESS_MESSAGE,
        context=f'Updating shared material {material_id}',
    )
    if not outcome.ok:
        return _render_form(request, templates, material_id=material_id, values=submitted)

    log_audit(
        db,
        actor_uid=user.uid,
        action='SHARED_MATERIAL_UPDATE',
        ip=get_client_ip(request),
        collection=SHARED_MATERIALS,
        document_id=material_id,
        metadata={'name': values['name']},
    )
    db.commit()
    return RedirectResponse(LIST_ROUTE, status_code=303)


@router.get('/shared-material-history/{material_id}')
async def shared_material_history(
    material_id: str,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
    _: AuthUser = Depends(get_current_user),
):
    material = await _load_material(store, material_id, notifier)
    if material is None:
        return RedirectResponse(LIST_ROUTE, status_code=303)

    history: PageState[MaterialHistoryEntry] = PageState(liveness=liveness)
    if not await history.load(fetch_material_history(store, material_id, notifier=notifier, liveness=liveness)):
        return abandoned()
    return templates.TemplateResponse(
        request,
        'shared_material_history.html',
        {
            'material': material,
            'entries': history.records,
            'load_error': history.error,
        },
    )
