"""
SQLAlchemy models for call attempts.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from salesfloor.shared.database import Base


class CallState(str, Enum):
    """Lifecycle state of a call attempt."""

    REQUESTED = "requested"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"


OPEN_STATES = (CallState.REQUESTED, CallState.IN_PROGRESS)


class CallDirection(str, Enum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


_OPEN_PREDICATE = text("state IN ('requested', 'in_progress')")


class CallAttempt(Base):
    """One call placed to a prospect.

    Rows are only ever appended and transitioned forward; a prospect has at
    most one attempt in an open state, enforced by a partial unique index.
    """

    __tablename__ = "call_attempts"
    __table_args__ = (
        Index(
            "uq_call_attempts_open_prospect",
            "prospect_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_call_attempts_state", "state"),
        Index("ix_call_attempts_prospect_ended", "prospect_id", "ended_at"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    prospect_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("prospects.id", ondelete="CASCADE"),
        nullable=False,
    )
    caller_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    from_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    direction: Mapped[CallDirection] = mapped_column(
        SQLEnum(CallDirection, name="call_direction", values_callable=_enum_values),
        nullable=False,
        default=CallDirection.OUTBOUND,
    )
    state: Mapped[CallState] = mapped_column(
        SQLEnum(CallState, name="call_state", values_callable=_enum_values),
        nullable=False,
        default=CallState.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    connected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    outcome: Mapped[str | None] = mapped_column(String(100), nullable=True)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recording_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_call_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_STATES

    def __repr__(self) -> str:
        return (
            f"<CallAttempt(id={self.id}, prospect_id={self.prospect_id}, "
            f"state={self.state})>"
        )


class VoicemailDrop(Base):
    """A prerecorded voicemail played into a live call attempt."""

    __tablename__ = "voicemail_drops"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    call_attempt_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("call_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    prospect_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("prospects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dropped_by: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    voicemail_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    dropped_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
