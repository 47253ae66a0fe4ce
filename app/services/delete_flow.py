from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.services import local_state_service
from app.services.notification_service import Notifier
from app.services.outcomes import Outcome, attempt

logger = logging.getLogger(__name__)

NOTHING_PENDING = 'NOTHING_PENDING'


class DeleteState(str, Enum):
    IDLE = 'IDLE'
    PENDING_CONFIRMATION = 'PENDING_CONFIRMATION'
    DELETING = 'DELETING'


@dataclass(frozen=True)
class DeleteTarget:
    id: str
    label: str = ''


class DeleteConfirmFlow:
    """
    Two-step delete: mark a target, then confirm or cancel.

    Only one target is pending at a time; marking another one replaces it.
    Nothing is removed from the displayed list locally, the caller refetches
    after a successful delete.
    """

    def __init__(self, scope: str, pending: DeleteTarget | None = None) -> None:
        self.scope = scope
        self.target = pending
        self.state = DeleteState.PENDING_CONFIRMATION if pending else DeleteState.IDLE

    @property
    def is_pending(self) -> bool:
        return self.state == DeleteState.PENDING_CONFIRMATION

    def request(self, target: DeleteTarget) -> None:
        if self.state == DeleteState.DELETING:
            raise RuntimeError('A delete is already running')
        self.target = target
        self.state = DeleteState.PENDING_CONFIRMATION

    def cancel(self) -> None:
        if self.state == DeleteState.DELETING:
            return
        self.target = None
        self.state = DeleteState.IDLE

    async def confirm(
        self,
        delete: Callable[[str], Awaitable[Any]],
        *,
        notifier: Notifier,
        success_message: str,
        error_message: str,
        refetch: Callable[[], Awaitable[Any]] | None = None,
    ) -> Outcome[str]:
        if self.state != DeleteState.PENDING_CONFIRMATION or self.target is None:
            return Outcome.failure(NOTHING_PENDING)

        target = self.target
        self.state = DeleteState.DELETING
        try:
            outcome = await attempt(
                delete(target.id),
                notifier=notifier,
                error_message=error_message,
                success_message=success_message,
                context=f'Deleting {self.scope}/{target.id}',
            )
        finally:
            self.target = None
            self.state = DeleteState.IDLE

        if not outcome.ok:
            return Outcome.failure(outcome.error or error_message, value=target.id)
        logger.info('Deleted %s/%s', self.scope, target.id)
        if refetch is not None:
            await refetch()
        return Outcome.success(target.id)


def _state_key(scope: str) -> str:
    return f'pendingDelete:{scope}'


def load_flow(db: Session, *, session_token: str, scope: str) -> DeleteConfirmFlow:
    raw = local_state_service.get_json(db, session_token=session_token, key=_state_key(scope))
    pending = None
    if isinstance(raw, dict) and raw.get('id'):
        pending = DeleteTarget(id=str(raw['id']), label=str(raw.get('label') or ''))
    return DeleteConfirmFlow(scope, pending)


def save_flow(db: Session, *, session_token: str, flow: DeleteConfirmFlow) -> None:
    if flow.is_pending and flow.target is not None:
        local_state_service.set_json(
            db,
            session_token=session_token,
            key=_state_key(flow.scope),
            value={'id': flow.target.id, 'label': flow.target.label},
        )
    else:
        local_state_service.remove_item(db, session_token=session_token, key=_state_key(flow.scope))
