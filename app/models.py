from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
PrimaryKey = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class AuthPersistence(str, Enum):
    LOCAL = 'LOCAL'
    SESSION = 'SESSION'


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    uid: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text)
    persistence: Mapped[AuthPersistence] = mapped_column(
        SQLEnum(AuthPersistence, name='auth_persistence'),
        nullable=False,
        default=AuthPersistence.LOCAL,
        server_default='LOCAL',
    )
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class SessionStateEntry(Base):
    __tablename__ = 'session_state_entries'
    __table_args__ = (
        UniqueConstraint('session_token', 'key', name='session_state_entries_token_key_uniq'),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    session_token: Mapped[str] = mapped_column(
        String(128),
        ForeignKey('web_sessions.session_token', ondelete='CASCADE'),
        nullable=False,
    )
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    uid: Mapped[str | None] = mapped_column(String(128))
    ip: Mapped[str | None] = mapped_column(Text)
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    actor_uid: Mapped[str | None] = mapped_column(String(128))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    collection: Mapped[str | None] = mapped_column(Text)
    document_id: Mapped[str | None] = mapped_column(String(128))
    ip: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict, server_default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
