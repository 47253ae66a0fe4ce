from __future__ import annotations

from sqlalchemy.orm import Session

from app.models import AuditLog, AuthEvent


def log_auth_event(
    db: Session,
    *,
    attempted_email: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    uid: str | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_email=attempted_email,
            success=success,
            failure_reason=failure_reason,
            uid=uid,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_uid: str | None,
    action: str,
    ip: str | None,
    collection: str | None = None,
    document_id: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_uid=actor_uid,
            action=action,
            collection=collection,
            document_id=document_id,
            ip=ip,
            meta=metadata or {},
        )
    )
