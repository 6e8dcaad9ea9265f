"""initial schema: users, area codes, incidents, messaging, reports, audit, notifications

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

STATUS_CHECK = "status IN ('pending', 'under process', 'approved', 'rejected', 'problem solved')"


def _insp():
    return sa.inspect(op.get_bind())


def _has_table(name: str) -> bool:
    return name in _insp().get_table_names()


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade():
    if not _has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("email", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=False, server_default=""),
            sa.Column("phone", sa.String(50), nullable=True),
            sa.Column("hashed_password", sa.String, nullable=False),
            sa.Column("capabilities", sa.JSON, nullable=False),
            sa.Column("area_code", sa.String(16), nullable=True),
            sa.Column("is_suspended", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("suspended_until", sa.DateTime, nullable=True),
            sa.Column("warnings", sa.JSON, nullable=False),
            sa.Column("reward_points", sa.Integer, nullable=False, server_default="0"),
            *_timestamps(),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_area_code", "users", ["area_code"])
        op.create_index("ix_users_suspended_until", "users", ["suspended_until"])

    if not _has_table("area_codes"):
        op.create_table(
            "area_codes",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("code", sa.String(16), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text, nullable=False, server_default=""),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.Integer, nullable=True),
            sa.Column("total_users", sa.Integer, nullable=False, server_default="0"),
            sa.Column("total_incidents", sa.Integer, nullable=False, server_default="0"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_area_codes_code", "area_codes", ["code"], unique=True)
        op.create_index("ix_area_codes_is_active", "area_codes", ["is_active"])

    if not _has_table("area_admin_assignments"):
        op.create_table(
            "area_admin_assignments",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("area_id", sa.Integer, nullable=False),
            sa.Column("admin_id", sa.Integer, nullable=False),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["area_id"], ["area_codes.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("area_id", "admin_id", name="uq_area_admin"),
        )
        op.create_index("ix_area_admin_assignments_area_id", "area_admin_assignments", ["area_id"])
        op.create_index("ix_area_admin_assignments_admin_id", "area_admin_assignments", ["admin_id"])

    if not _has_table("incidents"):
        op.create_table(
            "incidents",
            sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
            sa.Column("owner_id", sa.Integer, nullable=False),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("description", sa.Text, nullable=False),
            sa.Column("type", sa.String(30), nullable=False),
            sa.Column("location", sa.String(255), nullable=False),
            sa.Column("latitude", sa.Float, nullable=True),
            sa.Column("longitude", sa.Float, nullable=True),
            sa.Column("image_url", sa.String(500), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("is_important", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("allow_messages", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("area_code", sa.String(16), nullable=False),
            *_timestamps(),
            sa.CheckConstraint(STATUS_CHECK, name="ck_incidents_status"),
            sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_incidents_owner_id", "incidents", ["owner_id"])
        op.create_index("ix_incidents_type", "incidents", ["type"])
        op.create_index("ix_incidents_status", "incidents", ["status"])
        op.create_index("ix_incidents_area_code", "incidents", ["area_code"])
        op.create_index("ix_incidents_created_at", "incidents", ["created_at"])
        op.create_index("ix_incidents_area_status", "incidents", ["area_code", "status"])

    if not _has_table("incident_acknowledgements"):
        op.create_table(
            "incident_acknowledgements",
            sa.Column("incident_id", sa.Integer, primary_key=True),
            sa.Column("user_id", sa.Integer, primary_key=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["incident_id"], ["incidents.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )

    if not _has_table("incident_messages"):
        op.create_table(
            "incident_messages",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("incident_id", sa.Integer, nullable=False),
            sa.Column("sender_id", sa.Integer, nullable=False),
            sa.Column("receiver_id", sa.Integer, nullable=False),
            sa.Column("content", sa.Text, nullable=False),
            *_timestamps(),
            sa.ForeignKeyConstraint(["incident_id"], ["incidents.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["receiver_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_incident_messages_incident_id", "incident_messages", ["incident_id"])
        op.create_index("ix_incident_messages_sender_id", "incident_messages", ["sender_id"])
        op.create_index("ix_incident_messages_receiver_id", "incident_messages", ["receiver_id"])
        op.create_index("ix_incident_messages_created_at", "incident_messages", ["created_at"])

    if not _has_table("incident_message_replies"):
        op.create_table(
            "incident_message_replies",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("message_id", sa.Integer, nullable=False),
            sa.Column("sender_id", sa.Integer, nullable=False),
            sa.Column("content", sa.Text, nullable=False),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["message_id"], ["incident_messages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_incident_message_replies_message_id", "incident_message_replies", ["message_id"])

    if not _has_table("reports"):
        # plain integer references: reports outlive the rows they point at
        op.create_table(
            "reports",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("reporter_id", sa.Integer, nullable=False),
            sa.Column("reported_user_id", sa.Integer, nullable=False),
            sa.Column("incident_id", sa.Integer, nullable=False),
            sa.Column("message_id", sa.Integer, nullable=True),
            sa.Column("reason", sa.Text, nullable=False),
            sa.Column("screenshot_url", sa.String(500), nullable=True),
            sa.Column("chat_snapshot", sa.JSON, nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("admin_action", sa.String(20), nullable=False, server_default="none"),
            sa.Column("review_note", sa.Text, nullable=True),
            sa.Column("reviewed_by", sa.Integer, nullable=True),
            sa.Column("reviewed_at", sa.DateTime, nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_reports_reporter_id", "reports", ["reporter_id"])
        op.create_index("ix_reports_reported_user_id", "reports", ["reported_user_id"])
        op.create_index("ix_reports_incident_id", "reports", ["incident_id"])
        op.create_index("ix_reports_status", "reports", ["status"])
        op.create_index("ix_reports_created_at", "reports", ["created_at"])

    if not _has_table("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("actor_id", sa.Integer, nullable=True),
            sa.Column("actor_name", sa.String(255), nullable=False, server_default="system"),
            sa.Column("action", sa.String(100), nullable=False),
            sa.Column("target_type", sa.String(20), nullable=False),
            sa.Column("target_id", sa.Integer, nullable=True),
            sa.Column("details", sa.Text, nullable=False, server_default=""),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
        op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
        op.create_index("ix_audit_logs_target_type", "audit_logs", ["target_type"])
        op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"])
        op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    if not _has_table("notifications"):
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("user_id", sa.Integer, nullable=True),
            sa.Column("title", sa.String(200), nullable=False),
            sa.Column("message", sa.Text, nullable=False),
            sa.Column("type", sa.String(30), nullable=False, server_default="system_alert"),
            sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("link", sa.String(500), nullable=True),
            sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade():
    for table in (
        "notifications",
        "audit_logs",
        "reports",
        "incident_message_replies",
        "incident_messages",
        "incident_acknowledgements",
        "incidents",
        "area_admin_assignments",
        "area_codes",
        "users",
    ):
        if _has_table(table):
            op.drop_table(table)
