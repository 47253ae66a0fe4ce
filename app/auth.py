from fastapi import Depends, HTTPException, Request, status

from app.security.session_observer import SessionView
from app.services.identity_provider import AuthUser


def get_session_view(request: Request) -> SessionView:
    view = getattr(request.state, 'session_view', None)
    if view is None:
        return SessionView(user=None, is_loading=False)
    return view


def get_current_user(request: Request) -> AuthUser:
    user = getattr(request.state, 'user', None)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return user


def get_session_token(request: Request, _: AuthUser = Depends(get_current_user)) -> str:
    token = getattr(request.state, 'session_token', None)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return token
