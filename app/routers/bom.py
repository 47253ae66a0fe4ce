from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from app.auth import get_current_user, get_session_token
from app.config import settings
from app.db import get_db
from app.dependencies import (
    get_blob_storage,
    get_client_ip,
    get_document_store,
    get_liveness,
    get_notifier,
    get_templates,
)
from app.routers.common import abandoned, parse_page, register_delete_routes
from app.security.csrf import verify_csrf
from app.services.audit_service import log_audit
from app.services.blob_storage import BlobStorage
from app.services.bom_editor_service import BomItem, add_item, apply_form_edits, compute_total_cost, delete_item, parse_item_rows
from app.services.bom_service import (
    NOT_FOUND_MESSAGE,
    PLACEHOLDER_IMAGE_URL,
    BomTable,
    Category,
    UploadedImage,
    delete_bom_table,
    fetch_bom_tables,
    fetch_categories,
    get_bom_table,
    resolve_shared_items,
    save_bom_table,
    search_bom_tables,
    validate_table_name,
)
from app.services.delete_flow import load_flow
from app.services.document_store import BOM_TABLES, DocumentStore, DocumentStoreError
from app.services.identity_provider import AuthUser
from app.services.notification_service import Notifier
from app.services.number_utils import format_money
from app.services.outcomes import attempt
from app.services.page_state import Liveness, PageState
from app.services.shared_material_service import SharedMaterial, fetch_shared_materials, materials_by_name
from app.services.sort_utils import paginate, sort_records

logger = logging.getLogger(__name__)

router = APIRouter(tags=['bom'])

LIST_ROUTE = '/bom-table'
LOAD_ERROR_MESSAGE = '獲取數據時發生錯誤'
UPDATE_SUCCESS_MESSAGE = 'BOM 表修改成功'
UPDATE_ERROR_MESSAGE = '修改 BOM 表時發生錯誤'
CREATE_SUCCESS_MESSAGE = 'BOM 表新增成功'
CREATE_ERROR_MESSAGE = '新增 BOM 表時發生錯誤'
DELETE_SUCCESS_MESSAGE = 'BOM 表已刪除'
DELETE_ERROR_MESSAGE = '刪除 BOM 表時發生錯誤'

SORT_KEYS = {
    'tableName': lambda table: table.table_name,
    'category': lambda table: table.category,
    'totalCost': lambda table: table.total_cost,
    'updatedAt': lambda table: table.updated_at,
}


@router.get(LIST_ROUTE)
async def bom_table_list(
    request: Request,
    q: str = '',
    category: str = '',
    sort: str = 'tableName',
    order: str = 'asc',
    page: str = '1',
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
):
    tables: PageState[BomTable] = PageState(liveness=liveness)
    if not await tables.load(fetch_bom_tables(store, notifier=notifier, liveness=liveness)):
        return abandoned()
    categories: PageState[Category] = PageState(liveness=liveness)
    if not await categories.load(fetch_categories(store, notifier=notifier, liveness=liveness)):
        return abandoned()
    materials: PageState[SharedMaterial] = PageState(liveness=liveness)
    if not await materials.load(fetch_shared_materials(store, notifier=notifier, liveness=liveness)):
        return abandoned()

    catalog = materials_by_name(materials.records)
    matching = search_bom_tables(tables.records, q, category)
    sort_key = SORT_KEYS.get(sort, SORT_KEYS['tableName'])
    ordered = sort_records(matching, sort_key, descending=order == 'desc')
    current_page = paginate(ordered, page=parse_page(page), size=settings.page_size)
    orphans = {
        table.id: sum(1 for resolved in resolve_shared_items(table.items, catalog) if resolved.orphaned)
        for table in current_page.items
    }
    flow = load_flow(db, session_token=token, scope=BOM_TABLES)

    return templates.TemplateResponse(
        request,
        'bom_list.html',
        {
            'page': current_page,
            'orphans': orphans,
            'categories': categories.records,
            'query': q,
            'category': category,
            'sort': sort,
            'order': order,
            'load_error': tables.error,
            'delete_flow': flow,
        },
    )


register_delete_routes(
    router,
    list_route=LIST_ROUTE,
    scope=BOM_TABLES,
    delete=delete_bom_table,
    success_message=DELETE_SUCCESS_MESSAGE,
    error_message=DELETE_ERROR_MESSAGE,
)


async def _load_catalogs(
    store: DocumentStore,
    notifier: Notifier,
    liveness: Liveness,
) -> tuple[list[SharedMaterial], list[Category]]:
    materials = await fetch_shared_materials(store, notifier=notifier, liveness=liveness)
    categories = await fetch_categories(store, notifier=notifier, liveness=liveness)
    return list(materials.value or []), list(categories.value or [])


def _render_form(
    request: Request,
    templates: Jinja2Templates,
    *,
    mode: str,
    table_id: str | None,
    table_name: str,
    category: str,
    image_url: str,
    items: Sequence[BomItem],
    materials: list[SharedMaterial],
    categories: list[Category],
    load_error: bool = False,
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        'bom_form.html',
        {
            'mode': mode,
            'table_id': table_id,
            'table_name': table_name,
            'category': category,
            'image_url': image_url,
            'preview_url': image_url or PLACEHOLDER_IMAGE_URL,
            'rows': resolve_shared_items(items, materials_by_name(materials)),
            'materials': materials,
            'categories': categories,
            'total_cost': format_money(compute_total_cost(items)),
            'load_error': load_error,
        },
        status_code=status_code,
    )


async def _uploaded_image(form: Mapping[str, Any]) -> UploadedImage | None:
    upload = form.get('image')
    if not isinstance(upload, UploadFile) or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    return UploadedImage(data=data, content_type=upload.content_type)


@router.get('/new-bomtable')
async def new_bom_table_page(
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
    _: AuthUser = Depends(get_current_user),
):
    materials, categories = await _load_catalogs(store, notifier, liveness)
    if not await liveness.check():
        return abandoned()
    return _render_form(
        request,
        templates,
        mode='new',
        table_id=None,
        table_name='',
        category='',
        image_url='',
        items=(BomItem(),),
        materials=materials,
        categories=categories,
    )


@router.get('/edit-bomtable/{table_id}')
async def edit_bom_table_page(
    table_id: str,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
    _: AuthUser = Depends(get_current_user),
):
    try:
        table = await get_bom_table(store, table_id)
    except DocumentStoreError as exc:
        logger.warning('Loading BOM table %s failed: %s', table_id, exc)
        if not await liveness.check():
            return abandoned()
        notifier.error(LOAD_ERROR_MESSAGE)
        return _render_form(
            request,
            templates,
            mode='edit',
            table_id=table_id,
            table_name='',
            category='',
            image_url='',
            items=(),
            materials=[],
            categories=[],
            load_error=True,
        )

    if table is None:
        notifier.error(NOT_FOUND_MESSAGE)
        return RedirectResponse('/', status_code=303)

    materials, categories = await _load_catalogs(store, notifier, liveness)
    if not await liveness.check():
        return abandoned()
    return _render_form(
        request,
        templates,
        mode='edit',
        table_id=table.id,
        table_name=table.table_name,
        category=table.category,
        image_url=table.image_url,
        items=table.items,
        materials=materials,
        categories=categories,
    )


async def _handle_editor_post(
    request: Request,
    *,
    mode: str,
    table_id: str | None,
    db: Session,
    store: DocumentStore,
    blobs: BlobStorage,
    notifier: Notifier,
    templates: Jinja2Templates,
    user: AuthUser,
):
    form = await request.form()
    action = str(form.get('action') or 'refresh')
    table_name = str(form.get('tableName') or '')
    category = str(form.get('category') or '')
    image_url = str(form.get('imageUrl') or '')

    materials, categories = await _load_catalogs(store, notifier, Liveness())
    items = apply_form_edits(parse_item_rows(form), materials_by_name(materials))

    def rerender(current_items: Sequence[BomItem], status_code: int = 200):
        return _render_form(
            request,
            templates,
            mode=mode,
            table_id=table_id,
            table_name=table_name,
            category=category,
            image_url=image_url,
            items=current_items,
            materials=materials,
            categories=categories,
            status_code=status_code,
        )

    if action == 'add_item':
        return rerender(add_item(items))
    if action.startswith('delete_item:'):
        try:
            index = int(action.split(':', 1)[1])
        except ValueError:
            return rerender(items)
        try:
            return rerender(delete_item(items, index))
        except IndexError:
            return rerender(items)
        except ValueError as exc:
            notifier.error(str(exc))
            return rerender(items)
    if action != 'save':
        return rerender(items)

    try:
        clean_name = validate_table_name(table_name)
    except ValueError as exc:
        notifier.error(str(exc))
        return rerender(items, status_code=400)

    create = table_id is None
    target_id = table_id or store.new_id(BOM_TABLES)
    image = await _uploaded_image(form)
    outcome = await attempt(
        save_bom_table(
            store,
            blobs,
            table_id=target_id,
            table_name=clean_name,
            items=items,
            category=category,
            image_url=image_url,
            image=image,
            actor=user,
            create=create,
        ),
        notifier=notifier,
        error_message=CREATE_ERROR_MESSAGE if create else UPDATE_ERROR_MESSAGE,
        success_message=CREATE_SUCCESS_MESSAGE if create else UPDATE_SUCCESS_MESSAGE,
        context=f'Saving BOM table {target_id}',
    )
    if not outcome.ok:
        return rerender(items)

    log_audit(
        db,
        actor_uid=user.uid,
        action='BOM_TABLE_CREATE' if create else 'BOM_TABLE_UPDATE',
        ip=get_client_ip(request),
        collection=BOM_TABLES,
        document_id=target_id,
        metadata={'tableName': clean_name, 'items': len(items)},
    )
    db.commit()
    return RedirectResponse(LIST_ROUTE, status_code=303)


@router.post('/new-bomtable')
async def new_bom_table_submit(
    request: Request,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    blobs: BlobStorage = Depends(get_blob_storage),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    user: AuthUser = Depends(get_current_user),
    _: None = Depends(verify_csrf),
):
    return await _handle_editor_post(
        request,
        mode='new',
        table_id=None,
        db=db,
        store=store,
        blobs=blobs,
        notifier=notifier,
        templates=templates,
        user=user,
    )


@router.post('/edit-bomtable/{table_id}')
async def edit_bom_table_submit(
    table_id: str,
    request: Request,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    blobs: BlobStorage = Depends(get_blob_storage),
    notifier: Notifier = Depends(get_notifier),
    templates: Jinja2Templates = Depends(get_templates),
    user: AuthUser = Depends(get_current_user),
    _: None = Depends(verify_csrf),
):
    return await _handle_editor_post(
        request,
        mode='edit',
        table_id=table_id,
        db=db,
        store=store,
        blobs=blobs,
        notifier=notifier,
        templates=templates,
        user=user,
    )
