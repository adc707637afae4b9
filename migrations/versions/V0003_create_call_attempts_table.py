"""Create call_attempts table.

At most one open (requested or in_progress) attempt per prospect, enforced
by a partial unique index.

Revision ID: V0003
Revises: V0002
Create Date: 2026-01-05 00:00:02.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "V0003"
down_revision: Union[str, None] = "V0002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

call_state = sa.Enum("requested", "in_progress", "ended", name="call_state")
call_direction = sa.Enum("outbound", "inbound", name="call_direction")

OPEN_PREDICATE = sa.text("state IN ('requested', 'in_progress')")


def upgrade() -> None:
    op.create_table(
        "call_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "prospect_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("prospects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "caller_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("phone_number", sa.String(50), nullable=False),
        sa.Column("from_number", sa.String(50), nullable=True),
        sa.Column("direction", call_direction, nullable=False, server_default="outbound"),
        sa.Column("state", call_state, nullable=False, server_default="in_progress"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("outcome", sa.String(100), nullable=True),
        sa.Column("duration_seconds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("recording_ref", sa.String(500), nullable=True),
        sa.Column("provider", sa.String(50), nullable=True),
        sa.Column("provider_call_id", sa.String(255), nullable=True),
    )

    op.create_index(
        "uq_call_attempts_open_prospect",
        "call_attempts",
        ["prospect_id"],
        unique=True,
        postgresql_where=OPEN_PREDICATE,
        sqlite_where=OPEN_PREDICATE,
    )
    op.create_index("ix_call_attempts_state", "call_attempts", ["state"])
    op.create_index(
        "ix_call_attempts_prospect_ended", "call_attempts", ["prospect_id", "ended_at"]
    )
    op.create_index("ix_call_attempts_caller_id", "call_attempts", ["caller_id"])
    op.create_index(
        "ix_call_attempts_provider_call_id", "call_attempts", ["provider_call_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_call_attempts_provider_call_id", table_name="call_attempts")
    op.drop_index("ix_call_attempts_caller_id", table_name="call_attempts")
    op.drop_index("ix_call_attempts_prospect_ended", table_name="call_attempts")
    op.drop_index("ix_call_attempts_state", table_name="call_attempts")
    op.drop_index("uq_call_attempts_open_prospect", table_name="call_attempts")
    op.drop_table("call_attempts")
    bind = op.get_bind()
    call_state.drop(bind, checkfirst=True)
    call_direction.drop(bind, checkfirst=True)
