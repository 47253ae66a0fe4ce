import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from app.auth import get_session_view
from app.config import settings
from app.db import init_db
from app.routers import analysis, auth, bom, pricing, shared_materials
from app.security.csrf import install_csrf_cookie_middleware
from app.security.headers import install_security_headers
from app.security.session_observer import SessionObserver
from app.security.sessions import install_auth_session_middleware
from app.services.notification_service import install_toast_middleware, pending_toasts
from app.services.provider_factory import get_identity_provider

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

MENU_CARDS = [
    {'title': 'BOM 表', 'description': '管理產品 BOM 表與成本', 'href': '/bom-table'},
    {'title': '共用料', 'description': '維護共用原料與單位成本', 'href': '/shared-material'},
    {'title': '經銷報價', 'description': '設定經銷、特價與底價', 'href': '/dealer-pricing'},
    {'title': '歷史報價', 'description': '載入或管理已儲存的報價方案', 'href': '/saved-pricing'},
    {'title': '訂單分析', 'description': '查看已儲存的 Excel 分析', 'href': '/excel-analysis'},
]


DISPLAY_TIMEZONE = ZoneInfo('Asia/Taipei')


def format_taipei_time(value, empty: str = '-') -> str:
    if not isinstance(value, datetime):
        return empty
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(DISPLAY_TIMEZONE).strftime('%Y/%m/%d %H:%M:%S')


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    observer = SessionObserver(
        get_identity_provider(),
        display_delay=settings.auth_display_delay_seconds,
        idle_ttl=settings.session_ttl_minutes * 60,
    )
    app.state.session_observer = observer
    observer.start()
    logger.info('Session observer started')
    try:
        yield
    finally:
        observer.stop()
        logger.info('Session observer stopped')


app = FastAPI(title='KIND FOOD ERP', lifespan=lifespan)

TEMPLATE_DIR = Path(__file__).resolve().parent / 'templates'
app.state.templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


def _csrf_token(request: Request) -> str:
    return getattr(request.state, 'csrf_token', '')


app.state.templates.env.globals['csrf_token'] = _csrf_token
app.state.templates.env.globals['toasts'] = pending_toasts
app.state.templates.env.globals['session_view'] = get_session_view
app.state.templates.env.filters['taipei_time'] = format_taipei_time

UPLOAD_DIR = Path(settings.upload_dir)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount('/uploads', StaticFiles(directory=str(UPLOAD_DIR)), name='uploads')

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)
# Outermost: the auth gate queues toasts on redirect.
install_toast_middleware(app)

app.include_router(auth.router)
app.include_router(bom.router)
app.include_router(shared_materials.router)
app.include_router(pricing.router)
app.include_router(analysis.router)


@app.get('/')
def root(request: Request):
    return request.app.state.templates.TemplateResponse(
        request,
        'home.html',
        {'cards': MENU_CARDS},
    )


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
