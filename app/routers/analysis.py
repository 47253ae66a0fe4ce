from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from app.auth import get_session_token
from app.db import get_db
from app.dependencies import get_document_store, get_liveness, get_notifier, get_templates
from app.routers.common import abandoned, register_delete_routes
from app.services.analysis_service import (
    DELETE_ERROR_MESSAGE,
    DELETE_SUCCESS_MESSAGE,
    SavedAnalysis,
    delete_saved_analysis,
    fetch_saved_analyses,
)
from app.services.delete_flow import load_flow
from app.services.document_store import EXCEL_ANALYSIS, DocumentStore
from app.services.notification_service import Notifier
from app.services.page_state import Liveness, PageState

router = APIRouter(tags=['analysis'])

LIST_ROUTE = '/excel-analysis'


@router.get(LIST_ROUTE)
async def saved_analysis_page(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(get_session_token),
    store: DocumentStore = Depends(get_document_store),
    notifier: Notifier = Depends(get_notifier),
    liveness: Liveness = Depends(get_liveness),
    templates: Jinja2Templates = Depends(get_templates),
):
    analyses: PageState[SavedAnalysis] = PageState(liveness=liveness)
    if not await analyses.load(fetch_saved_analyses(store, notifier=notifier, liveness=liveness)):
        return abandoned()
    return templates.TemplateResponse(
        request,
        'excel_analysis.html',
        {
            'analyses': analyses.records,
            'load_error': analyses.error,
            'delete_flow': load_flow(db, session_token=token, scope=EXCEL_ANALYSIS),
        },
    )


register_delete_routes(
    router,
    list_route=LIST_ROUTE,
    scope=EXCEL_ANALYSIS,
    delete=delete_saved_analysis,
    success_message=DELETE_SUCCESS_MESSAGE,
    error_message=DELETE_ERROR_MESSAGE,
)
