from fastapi import FastAPI, Request
from starlette.responses import Response

from app.security.sessions import STATIC_PREFIXES


ROBOTS_HEADER = "noindex, nofollow, noarchive"


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Robots-Tag"] = ROBOTS_HEADER
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "same-origin"
        if not request.url.path.startswith(STATIC_PREFIXES):
            # Pages carry per-user cost data.
            response.headers.setdefault("Cache-Control", "no-store")
        return response
