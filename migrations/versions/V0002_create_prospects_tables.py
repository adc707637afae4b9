"""Create prospects, prospect_status_log and lead_assignments tables.

Revision ID: V0002
Revises: V0001
Create Date: 2026-01-05 00:00:01.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "V0002"
down_revision: Union[str, None] = "V0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

prospect_status = sa.Enum(
    "new", "contacted", "qualified", "disqualified", "callback",
    name="prospect_status",
)


def upgrade() -> None:
    op.create_table(
        "prospects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("status", prospect_status, nullable=False, server_default="new"),
        sa.Column("timezone", sa.String(50), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("last_call_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_prospects_phone", "prospects", ["phone"])
    op.create_index("ix_prospects_status", "prospects", ["status"])

    op.create_table(
        "prospect_status_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "prospect_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("prospects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_status", sa.String(50), nullable=True),
        sa.Column("new_status", sa.String(50), nullable=False),
        sa.Column(
            "changed_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_prospect_status_log_prospect_id", "prospect_status_log", ["prospect_id"]
    )

    op.create_table(
        "lead_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "prospect_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("prospects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "assigned_to",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "assigned_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.UniqueConstraint(
            "prospect_id", "assigned_to", name="uq_lead_assignments_prospect_agent"
        ),
    )
    op.create_index(
        "ix_lead_assignments_prospect_id", "lead_assignments", ["prospect_id"]
    )
    op.create_index(
        "ix_lead_assignments_assigned_to", "lead_assignments", ["assigned_to"]
    )


def downgrade() -> None:
    op.drop_index("ix_lead_assignments_assigned_to", table_name="lead_assignments")
    op.drop_index("ix_lead_assignments_prospect_id", table_name="lead_assignments")
    op.drop_table("lead_assignments")
    op.drop_index(
        "ix_prospect_status_log_prospect_id", table_name="prospect_status_log"
    )
    op.drop_table("prospect_status_log")
    op.drop_index("ix_prospects_status", table_name="prospects")
    op.drop_index("ix_prospects_phone", table_name="prospects")
    op.drop_table("prospects")
    prospect_status.drop(op.get_bind(), checkfirst=True)
