from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.services.identity_provider import AuthUser, IdentityProvider

logger = logging.getLogger(__name__)

LANDING_ROUTE = '/'
SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class SessionView:
    user: AuthUser | None = None
    is_loading: bool = True
    is_logging_out: bool = False
    redirect_to: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and not self.is_loading


class SessionObserver:
    """
    Tracks the auth state of every browser session known to this process.

    One listener is registered with the identity provider for the lifetime of
    the application. A sign-in notification puts the session into a loading
    state for ``display_delay`` seconds before the user is exposed, so pages
    never flash between anonymous and authenticated layouts. A sign-out
    notification that arrives while a logout is in progress sends the session
    back to the landing route.

    Views untouched for longer than ``idle_ttl`` seconds belong to sessions
    whose sliding expiry has passed and are swept out.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        *,
        display_delay: float,
        landing_route: str = LANDING_ROUTE,
        idle_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.display_delay = display_delay
        self.landing_route = landing_route
        self.idle_ttl = idle_ttl
        self._clock = clock
        self._views: dict[str, SessionView] = {}
        self._last_seen: dict[str, float] = {}
        self._next_sweep = 0.0
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self._alive = False

    @property
    def alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        if self._alive:
            return
        self._alive = True
        self._unsubscribe = self.provider.on_auth_state_changed(self._on_auth_state_changed)

    def stop(self) -> None:
        self._alive = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def view(self, session_key: str | None) -> SessionView:
        if session_key and session_key in self._views:
            return self._views[session_key]
        return SessionView(user=None, is_loading=False)

    def has_pending_timer(self, session_key: str) -> bool:
        return session_key in self._timers

    def tracked_sessions(self) -> set[str]:
        return set(self._views)

    def restore(self, session_key: str, user: AuthUser) -> SessionView:
        """Register a session recovered from its cookie; no display delay applies."""
        self.sweep()
        view = self._views.get(session_key)
        if view is None:
            view = SessionView(user=user, is_loading=False)
            self._views[session_key] = view
        self._last_seen[session_key] = self._clock()
        return view

    def forget(self, session_key: str) -> None:
        self._cancel_timer(session_key)
        self._views.pop(session_key, None)
        self._last_seen.pop(session_key, None)

    def sweep(self, *, force: bool = False) -> None:
        if self.idle_ttl is None:
            return
        now = self._clock()
        if not force and now < self._next_sweep:
            return
        self._next_sweep = now + min(self.idle_ttl, SWEEP_INTERVAL_SECONDS)
        cutoff = now - self.idle_ttl
        stale = [key for key in self._views if key not in self._timers and self._last_seen.get(key, now) <= cutoff]
        for key in stale:
            self.forget(key)
        if stale:
            logger.debug('Evicted %d idle session views', len(stale))

    def begin_logout(self, session_key: str) -> None:
        self._views.setdefault(session_key, SessionView(is_loading=False)).is_logging_out = True

    def cancel_logout(self, session_key: str) -> None:
        view = self._views.get(session_key)
        if view is not None:
            view.is_logging_out = False

    def take_redirect(self, session_key: str) -> str | None:
        view = self._views.get(session_key)
        if view is None:
            return None
        redirect_to, view.redirect_to = view.redirect_to, None
        return redirect_to

    def _cancel_timer(self, session_key: str) -> None:
        handle = self._timers.pop(session_key, None)
        if handle is not None:
            handle.cancel()

    def _on_auth_state_changed(self, session_key: str, user: AuthUser | None) -> None:
        if not self._alive:
            return

        view = self._views.setdefault(session_key, SessionView())
        self._last_seen[session_key] = self._clock()
        view.is_loading = True
        self._cancel_timer(session_key)

        if user is not None:
            if self.display_delay <= 0:
                self._finish_sign_in(session_key, user)
                return
            loop = asyncio.get_running_loop()
            self._timers[session_key] = loop.call_later(self.display_delay, self._finish_sign_in, session_key, user)
            return

        view.user = None
        view.is_loading = False
        if view.is_logging_out:
            view.redirect_to = self.landing_route
            view.is_logging_out = False

    def _finish_sign_in(self, session_key: str, user: AuthUser) -> None:
        self._timers.pop(session_key, None)
        if not self._alive:
            return
        view = self._views.get(session_key)
        if view is None:
            return
        view.user = user
        view.is_loading = False
        logger.debug('Session %s settled for %s', session_key[:8], user.email)
