from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from app.services.blob_storage import BlobStorageError
from app.services.document_store import DocumentStoreError
from app.services.notification_service import Notifier

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Failures of the hosted collaborators. Anything else is a programming error and propagates.
REMOTE_ERRORS = (DocumentStoreError, BlobStorageError)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> 'Outcome[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, message: str, value: T | None = None) -> 'Outcome[T]':
        return cls(value=value, error=message)


async def attempt(
    awaitable: Awaitable[T],
    *,
    notifier: Notifier,
    error_message: str,
    success_message: str | None = None,
    context: str | None = None,
) -> Outcome[T]:
    """Await one remote call, reporting its result as a toast instead of raising."""
    try:
        value = await awaitable
    except REMOTE_ERRORS as exc:
        logger.warning('%s failed: %s', context or error_message, exc)
        notifier.error(error_message)
        return Outcome.failure(error_message)
    if success_message:
        notifier.success(success_message)
    return Outcome.success(value)
