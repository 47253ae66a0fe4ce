from __future__ import annotations

import base64
import binascii
import json
from dataclasses import asdict, dataclass

from fastapi import FastAPI, Request

from app.config import settings

SUCCESS = 'success'
ERROR = 'error'
INFO = 'info'

DEFAULT_AUTO_CLOSE_MS = 3000


@dataclass(frozen=True)
class Toast:
    level: str
    message: str
    auto_close_ms: int = DEFAULT_AUTO_CLOSE_MS


class Notifier:
    """Queue of toasts waiting to be shown on the next rendered page."""

    def __init__(self, pending: list[Toast] | None = None) -> None:
        self.pending: list[Toast] = list(pending or [])

    def push(self, level: str, message: str, *, auto_close_ms: int = DEFAULT_AUTO_CLOSE_MS) -> None:
        self.pending.append(Toast(level=level, message=message, auto_close_ms=auto_close_ms))

    def success(self, message: str, *, auto_close_ms: int = DEFAULT_AUTO_CLOSE_MS) -> None:
        self.push(SUCCESS, message, auto_close_ms=auto_close_ms)

    def error(self, message: str, *, auto_close_ms: int = DEFAULT_AUTO_CLOSE_MS) -> None:
        self.push(ERROR, message, auto_close_ms=auto_close_ms)

    def info(self, message: str, *, auto_close_ms: int = DEFAULT_AUTO_CLOSE_MS) -> None:
        self.push(INFO, message, auto_close_ms=auto_close_ms)

    def drain(self) -> list[Toast]:
        toasts, self.pending = self.pending, []
        return toasts


def encode_toasts(toasts: list[Toast]) -> str:
    raw = json.dumps([asdict(toast) for toast in toasts], ensure_ascii=False).encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii')


def decode_toasts(value: str | None) -> list[Toast]:
    if not value:
        return []
    try:
        payload = json.loads(base64.urlsafe_b64decode(value.encode('ascii')).decode('utf-8'))
    except (binascii.Error, UnicodeError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    toasts: list[Toast] = []
    for entry in payload:
        if isinstance(entry, dict) and entry.get('message'):
            toasts.append(
                Toast(
                    level=str(entry.get('level') or INFO),
                    message=str(entry['message']),
                    auto_close_ms=int(entry.get('auto_close_ms') or DEFAULT_AUTO_CLOSE_MS),
                )
            )
    return toasts


def pending_toasts(request: Request) -> list[Toast]:
    notifier = getattr(request.state, 'notifier', None)
    if notifier is None:
        return []
    return notifier.drain()


def install_toast_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def toast_middleware(request: Request, call_next):
        cookie_value = request.cookies.get(settings.toast_cookie_name)
        request.state.notifier = Notifier(decode_toasts(cookie_value))

        response = await call_next(request)
        remaining = request.state.notifier.pending
        if remaining:
            # Carried across the redirect and shown by the page it lands on.
            response.set_cookie(
                key=settings.toast_cookie_name,
                value=encode_toasts(remaining),
                httponly=True,
                secure=settings.session_cookie_secure,
                samesite='lax',
            )
        elif cookie_value:
            response.delete_cookie(settings.toast_cookie_name)
        return response
