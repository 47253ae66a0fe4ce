from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from app.services.document_store import Document, DocumentStore, DocumentStoreError
from app.services.notification_service import Notifier
from app.services.outcomes import Outcome

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Liveness:
    """Cancellation token for one page render."""

    def __init__(self, is_disconnected: Callable[[], Awaitable[bool]] | None = None) -> None:
        self._alive = True
        self._is_disconnected = is_disconnected

    @classmethod
    def for_request(cls, request) -> 'Liveness':
        return cls(request.is_disconnected)

    @property
    def alive(self) -> bool:
        return self._alive

    def cancel(self) -> None:
        self._alive = False

    async def check(self) -> bool:
        if self._alive and self._is_disconnected is not None and await self._is_disconnected():
            self._alive = False
        return self._alive


@dataclass
class PageState(Generic[T]):
    liveness: Liveness = field(default_factory=Liveness)
    records: list[T] = field(default_factory=list)
    is_loading: bool = True
    error: str | None = None

    async def load(self, pending: Awaitable[Outcome[list[T]]]) -> bool:
        outcome = await pending
        if not await self.liveness.check():
            return False
        self.records = list(outcome.value or [])
        self.error = outcome.error
        self.is_loading = False
        return True


async def fetch_collection(
    store: DocumentStore,
    collection: str,
    mapper: Callable[[Document], T],
    *,
    notifier: Notifier,
    error_message: str,
    order_by: str | None = None,
    descending: bool = False,
    liveness: Liveness | None = None,
) -> Outcome[list[T]]:
    try:
        documents = await store.get_all(collection, order_by=order_by, descending=descending)
    except DocumentStoreError as exc:
        logger.warning('Fetching %s failed: %s', collection, exc)
        if liveness is None or liveness.alive:
            notifier.error(error_message)
        return Outcome.failure(error_message, value=[])
    return Outcome.success([mapper(document) for document in documents])
