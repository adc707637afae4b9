"""Create lead_lists, lead_list_members and lead_list_shares tables.

Revision ID: V0004
Revises: V0003
Create Date: 2026-01-05 00:00:03.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "V0004"
down_revision: Union[str, None] = "V0003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "lead_lists",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_lead_lists_created_by", "lead_lists", ["created_by"])

    op.create_table(
        "lead_list_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "list_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lead_lists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "prospect_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("prospects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "list_id", "prospect_id", name="uq_lead_list_members_list_prospect"
        ),
    )
    op.create_index("ix_lead_list_members_list_id", "lead_list_members", ["list_id"])
    op.create_index(
        "ix_lead_list_members_prospect_id", "lead_list_members", ["prospect_id"]
    )

    op.create_table(
        "lead_list_shares",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "list_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lead_lists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("can_view", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("can_edit", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "shared_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("list_id", "user_id", name="uq_lead_list_shares_list_user"),
    )
    op.create_index("ix_lead_list_shares_list_id", "lead_list_shares", ["list_id"])
    op.create_index("ix_lead_list_shares_user_id", "lead_list_shares", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_lead_list_shares_user_id", table_name="lead_list_shares")
    op.drop_index("ix_lead_list_shares_list_id", table_name="lead_list_shares")
    op.drop_table("lead_list_shares")
    op.drop_index("ix_lead_list_members_prospect_id", table_name="lead_list_members")
    op.drop_index("ix_lead_list_members_list_id", table_name="lead_list_members")
    op.drop_table("lead_list_members")
    op.drop_index("ix_lead_lists_created_by", table_name="lead_lists")
    op.drop_table("lead_lists")
