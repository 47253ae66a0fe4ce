from __future__ import annotations

import json
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.models import SessionStateEntry

CURRENT_PRICING_DATA_KEY = 'currentPricingData'
LAST_ACTIVITY_TIME_KEY = 'lastActivityTime'


def get_item(db: Session, *, session_token: str, key: str) -> str | None:
    return db.execute(
        select(SessionStateEntry.value).where(
            SessionStateEntry.session_token == session_token,
            SessionStateEntry.key == key,
        )
    ).scalar_one_or_none()


def set_item(db: Session, *, session_token: str, key: str, value: str) -> None:
    entry = db.execute(
        select(SessionStateEntry).where(
            SessionStateEntry.session_token == session_token,
            SessionStateEntry.key == key,
        )
    ).scalar_one_or_none()
    if entry is None:
        db.add(SessionStateEntry(session_token=session_token, key=key, value=value))
    else:
        entry.value = value
    db.flush()


def remove_item(db: Session, *, session_token: str, key: str) -> None:
    db.execute(
        delete(SessionStateEntry).where(
            SessionStateEntry.session_token == session_token,
            SessionStateEntry.key == key,
        )
    )


def clear(db: Session, *, session_token: str) -> None:
    db.execute(delete(SessionStateEntry).where(SessionStateEntry.session_token == session_token))


def get_json(db: Session, *, session_token: str, key: str, default: Any = None) -> Any:
    raw = get_item(db, session_token=session_token, key=key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


def set_json(db: Session, *, session_token: str, key: str, value: Any) -> None:
    set_item(db, session_token=session_token, key=key, value=json.dumps(value, ensure_ascii=False, default=str))
