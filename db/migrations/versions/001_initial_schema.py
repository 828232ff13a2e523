"""Initial schema: projects, contacts, project_contacts, call_sessions, terminal_sessions.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # ─── Identity ────────────────────────────────────────────────────────────

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("suburb", sa.Text, nullable=True),
        sa.Column("postcode", sa.Text, nullable=True),
        sa.Column("state", sa.Text, nullable=True),
        sa.Column("category", sa.Text, nullable=True),
        sa.Column("awarded_date", sa.Date, nullable=True),
        sa.Column("distance", sa.Numeric(12, 4), nullable=True),
        sa.Column("budget", sa.Text, nullable=True),
        sa.Column("quotes_due_date", sa.Date, nullable=True),
        sa.Column("country", sa.Text, nullable=False, server_default="AU"),
        sa.Column("priority_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("call_suppressed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_call_eligible_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_id", name="uq_project_external_id"),
    )
    op.create_index("ix_projects_next_call_eligible_at", "projects", ["next_call_eligible_at"])

    op.create_table(
        "contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.Text, nullable=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("phone", sa.Text, nullable=True),
        sa.Column("company_name", sa.Text, nullable=True),
        sa.Column("global_role", sa.Text, nullable=True),
        sa.Column("authority_level", sa.Text, nullable=True),
        sa.Column("preferred_channel", sa.Text, nullable=True),
        sa.Column("do_not_call", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_ai_contact", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_id", name="uq_contact_external_id"),
        sa.UniqueConstraint("email", name="uq_contact_email"),
        sa.UniqueConstraint("phone", name="uq_contact_phone"),
    )

    op.create_table(
        "project_contacts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role_for_project", sa.Text, nullable=True),
        sa.Column("role_confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("role_confirmed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("preferred_channel_project", sa.Text, nullable=True),
        sa.Column("suppress_for_project", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_contacted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role_confidence IS NULL OR (role_confidence >= 0 AND role_confidence <= 1)",
            name="ck_project_contact_role_confidence",
        ),
        sa.UniqueConstraint("project_id", "contact_id", name="uq_project_contact"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_project_contact_project", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"], name="fk_project_contact_contact", ondelete="CASCADE"),
    )
    op.create_index("ix_project_contacts_contact_id", "project_contacts", ["contact_id"])

    # ─── Ledgers ─────────────────────────────────────────────────────────────

    op.create_table(
        "call_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.Text, nullable=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("call_type", sa.String(16), nullable=False),
        sa.Column("call_status", sa.Text, nullable=False),
        sa.Column("detected_role", sa.Text, nullable=True),
        sa.Column("role_confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("outcome", sa.Text, nullable=True),
        sa.Column("sentiment", sa.Text, nullable=True),
        sa.Column("escalated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("escalation_reason", sa.Text, nullable=True),
        sa.Column("transcript", sa.Text, nullable=True),
        sa.Column("recording_url", sa.Text, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("call_type IN ('ai', 'human')", name="ck_call_session_call_type"),
        sa.CheckConstraint(
            "sentiment IS NULL OR sentiment IN ('positive', 'neutral', 'negative')",
            name="ck_call_session_sentiment",
        ),
        sa.UniqueConstraint("external_id", name="uq_call_session_external_id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_call_session_project", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"], name="fk_call_session_contact", ondelete="SET NULL"),
    )
    op.create_index("ix_call_sessions_project_id", "call_sessions", ["project_id"])
    op.create_index("ix_call_sessions_contact_id", "call_sessions", ["contact_id"])
    op.create_index("ix_call_sessions_started_at", "call_sessions", ["started_at"])

    op.create_table(
        "terminal_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.Text, nullable=True),
        sa.Column("scope", sa.String(16), nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("created_by", sa.Text, nullable=False, server_default="system"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("override_allowed", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint(
            "(scope = 'project' AND project_id IS NOT NULL AND contact_id IS NULL) OR "
            "(scope = 'contact' AND contact_id IS NOT NULL AND project_id IS NULL) OR "
            "(scope = 'global' AND project_id IS NULL AND contact_id IS NULL)",
            name="ck_terminal_session_scope",
        ),
        sa.UniqueConstraint("external_id", name="uq_terminal_session_external_id"),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], name="fk_terminal_session_project", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["contact_id"], ["contacts.id"], name="fk_terminal_session_contact", ondelete="CASCADE"),
    )
    op.create_index("ix_terminal_sessions_scope", "terminal_sessions", ["scope"])
    op.create_index("ix_terminal_sessions_project_id", "terminal_sessions", ["project_id"])
    op.create_index("ix_terminal_sessions_contact_id", "terminal_sessions", ["contact_id"])


def downgrade() -> None:
    op.drop_index("ix_terminal_sessions_contact_id", table_name="terminal_sessions")
    op.drop_index("ix_terminal_sessions_project_id", table_name="terminal_sessions")
    op.drop_index("ix_terminal_sessions_scope", table_name="terminal_sessions")
    op.drop_index("ix_call_sessions_started_at", table_name="call_sessions")
    op.drop_index("ix_call_sessions_contact_id", table_name="call_sessions")
    op.drop_index("ix_call_sessions_project_id", table_name="call_sessions")
    op.drop_index("ix_project_contacts_contact_id", table_name="project_contacts")
    op.drop_index("ix_projects_next_call_eligible_at", table_name="projects")
    # Drop in reverse dependency order
    op.drop_table("terminal_sessions")
    op.drop_table("call_sessions")
    op.drop_table("project_contacts")
    op.drop_table("contacts")
    op.drop_table("projects")
