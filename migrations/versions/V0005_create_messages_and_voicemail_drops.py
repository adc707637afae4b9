"""Create messages and voicemail_drops tables.

Revision ID: V0005
Revises: V0004
Create Date: 2026-01-05 00:00:04.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "V0005"
down_revision: Union[str, None] = "V0004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "sender_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "recipient_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_messages_recipient_read", "messages", ["recipient_id", "read_at"])
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])

    op.create_table(
        "voicemail_drops",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "call_attempt_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("call_attempts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "prospect_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("prospects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "dropped_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("voicemail_ref", sa.String(255), nullable=False),
        sa.Column("dropped_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_voicemail_drops_call_attempt_id", "voicemail_drops", ["call_attempt_id"]
    )
    op.create_index("ix_voicemail_drops_prospect_id", "voicemail_drops", ["prospect_id"])


def downgrade() -> None:
    op.drop_index("ix_voicemail_drops_prospect_id", table_name="voicemail_drops")
    op.drop_index("ix_voicemail_drops_call_attempt_id", table_name="voicemail_drops")
    op.drop_table("voicemail_drops")
    op.drop_index("ix_messages_sender_id", table_name="messages")
    op.drop_index("ix_messages_recipient_read", table_name="messages")
    op.drop_table("messages")
