"""SQLAlchemy 2.0 ORM models for the outbound-calling CRM.

Covers 5 tables:
  - projects, contacts, project_contacts (identity + association ledger)
  - call_sessions (append-only call history)
  - terminal_sessions (scoped blocking states)
"""

import enum
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    UUID,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    TypeDecorator,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# ---------------------------------------------------------------------------
# Shared base and column types
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps on every backend.

    SQLite has no timezone storage: values are written as naive UTC and
    re-tagged as UTC on the way out, so Python-side comparisons never mix
    naive and aware datetimes.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class CallType(str, enum.Enum):
    AI = "ai"
    HUMAN = "human"


class TerminalScope(str, enum.Enum):
    PROJECT = "project"
    CONTACT = "contact"
    GLOBAL = "global"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


_TERMINAL_SCOPE_CHECK = (
    "(scope = 'project' AND project_id IS NOT NULL AND contact_id IS NULL) OR "
    "(scope = 'contact' AND contact_id IS NOT NULL AND project_id IS NULL) OR "
    "(scope = 'global' AND project_id IS NULL AND contact_id IS NULL)"
)


# ===========================================================================
# Identity
# ===========================================================================


class Project(Base):
    """projects — a unit of work the callers may phone about."""

    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("external_id", name="uq_project_external_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suburb: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    postcode: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    awarded_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    distance: Mapped[Optional[float]] = mapped_column(
        Numeric(12, 4, asdecimal=False), nullable=True
    )
    budget: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quotes_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    country: Mapped[str] = mapped_column(
        Text, nullable=False, default="AU", server_default="AU"
    )
    priority_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    call_suppressed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    # Cooldown columns are written by the call ledger only
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    next_call_eligible_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    contact_links: Mapped[list["ProjectContact"]] = relationship(
        "ProjectContact", back_populates="project", passive_deletes=True
    )


class Contact(Base):
    """contacts — a person who can be called, deduplicated on three keys."""

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("external_id", name="uq_contact_external_id"),
        UniqueConstraint("email", name="uq_contact_email"),
        UniqueConstraint("phone", name="uq_contact_phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    global_role: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    authority_level: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferred_channel: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    do_not_call: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    last_ai_contact: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    project_links: Mapped[list["ProjectContact"]] = relationship(
        "ProjectContact", back_populates="contact", passive_deletes=True
    )


class ProjectContact(Base):
    """project_contacts — per-pair role and suppression, never deleted."""

    __tablename__ = "project_contacts"
    __table_args__ = (
        UniqueConstraint("project_id", "contact_id", name="uq_project_contact"),
        CheckConstraint(
            "role_confidence IS NULL OR (role_confidence >= 0 AND role_confidence <= 1)",
            name="ck_project_contact_role_confidence",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE", name="fk_project_contact_project"),
        nullable=False,
    )
    contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE", name="fk_project_contact_contact"),
        nullable=False,
        index=True,
    )
    role_for_project: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role_confidence: Mapped[Optional[float]] = mapped_column(
        Numeric(3, 2, asdecimal=False), nullable=True
    )
    role_confirmed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    preferred_channel_project: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suppress_for_project: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="contact_links")
    contact: Mapped["Contact"] = relationship("Contact", back_populates="project_links")


# ===========================================================================
# Ledgers
# ===========================================================================


class CallSession(Base):
    """call_sessions — one call attempt. Append-only."""

    __tablename__ = "call_sessions"
    __table_args__ = (
        UniqueConstraint("external_id", name="uq_call_session_external_id"),
        CheckConstraint("call_type IN ('ai', 'human')", name="ck_call_session_call_type"),
        CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('positive', 'neutral', 'negative')",
            name="ck_call_session_sentiment",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="RESTRICT", name="fk_call_session_project"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="SET NULL", name="fk_call_session_contact"),
        nullable=True,
        index=True,
    )
    call_type: Mapped[CallType] = mapped_column(
        Enum(
            CallType,
            name="call_type",
            native_enum=False,
            values_callable=_enum_values,
            length=16,
        ),
        nullable=False,
    )
    call_status: Mapped[str] = mapped_column(Text, nullable=False)
    detected_role: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role_confidence: Mapped[Optional[float]] = mapped_column(
        Numeric(3, 2, asdecimal=False), nullable=True
    )
    outcome: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sentiment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transcript: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recording_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    ended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TerminalSession(Base):
    """terminal_sessions — a blocking state at project, contact or global scope."""

    __tablename__ = "terminal_sessions"
    __table_args__ = (
        CheckConstraint(_TERMINAL_SCOPE_CHECK, name="ck_terminal_session_scope"),
        UniqueConstraint("external_id", name="uq_terminal_session_external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[TerminalScope] = mapped_column(
        Enum(
            TerminalScope,
            name="terminal_scope",
            native_enum=False,
            values_callable=_enum_values,
            length=16,
        ),
        nullable=False,
        index=True,
    )
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE", name="fk_terminal_session_project"),
        nullable=True,
        index=True,
    )
    contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE", name="fk_terminal_session_contact"),
        nullable=True,
        index=True,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(
        Text, nullable=False, default="system", server_default="system"
    )
    # NULL = permanent
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    override_allowed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def to_dict(obj: Base) -> dict[str, Any]:
    """Convert an ORM row to a JSON-serializable dict."""
    out: dict[str, Any] = {}
    for column in obj.__mapper__.columns:
        val = getattr(obj, column.key)
        if isinstance(val, uuid.UUID):
            val = str(val)
        elif isinstance(val, enum.Enum):
            val = val.value
        elif isinstance(val, (datetime, date)):
            val = val.isoformat()
        elif isinstance(val, Decimal):
            val = float(val)
        out[column.key] = val
    return out


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

__all__ = [
    "Base",
    "UTCDateTime",
    "CallType",
    "TerminalScope",
    "Project",
    "Contact",
    "ProjectContact",
    "CallSession",
    "TerminalSession",
    "to_dict",
    "utcnow",
]
