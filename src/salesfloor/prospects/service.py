"""
Prospect service: CRUD, status tracking and lead assignment.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.prospects.models import (
    LeadAssignment,
    Prospect,
    ProspectStatus,
    ProspectStatusLog,
)
from salesfloor.prospects.repository import ProspectRepository
from salesfloor.shared.clock import utcnow
from salesfloor.shared.exceptions import ConflictError, NotFoundError, ValidationError
from salesfloor.shared.logging import get_logger
from salesfloor.shared.phone import normalize_phone_number

logger = get_logger(__name__)

_UPDATABLE_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "title",
    "phone",
    "email",
    "timezone",
    "notes",
)


@dataclass(frozen=True)
class ProspectPage:
    items: Sequence[Prospect]
    total: int
    page: int
    page_size: int


def _require_phone(raw: str) -> str:
    phone = normalize_phone_number(raw)
    if phone is None:
        raise ValidationError(
            message="Phone number must be in E.164 format",
            details={"phone": raw},
        )
    return phone


class ProspectService:
    """Service for prospect operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = ProspectRepository(session)

    async def list_prospects(
        self,
        status: ProspectStatus | None = None,
        assigned_to: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> ProspectPage:
        items, total = await self._repo.find(
            status=status,
            assigned_to=assigned_to,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        return ProspectPage(items=items, total=total, page=page, page_size=page_size)

    async def get_prospect(self, prospect_id: UUID) -> Prospect:
        prospect = await self._repo.get_by_id(prospect_id)
        if prospect is None:
            raise NotFoundError(
                message="Prospect not found",
                details={"prospect_id": str(prospect_id)},
            )
        return prospect

    async def create_prospect(self, data: dict[str, Any], created_by: UUID | None) -> Prospect:
        """Create a prospect.

        Raises:
            ValidationError: If the phone number is not E.164.
            ConflictError: If another prospect already has the phone number.
        """
        phone = _require_phone(data["phone"])
        if await self._repo.get_by_phone(phone) is not None:
            raise ConflictError(
                message="A prospect with this phone number already exists",
                details={"phone": phone},
            )

        prospect = Prospect(
            first_name=data["first_name"],
            last_name=data["last_name"],
            company=data.get("company"),
            title=data.get("title"),
            phone=phone,
            email=data.get("email"),
            status=data.get("status") or ProspectStatus.NEW,
            timezone=data.get("timezone"),
            notes=data.get("notes"),
            created_by=created_by,
        )
        try:
            prospect = await self._repo.add(prospect)
        except IntegrityError:
            await self._session.rollback()
            raise ConflictError(
                message="A prospect with this phone number already exists",
                details={"phone": phone},
            )

        logger.info(
            "Prospect created",
            extra={"prospect_id": str(prospect.id), "created_by": str(created_by)},
        )
        return prospect

    async def update_prospect(
        self,
        prospect_id: UUID,
        changes: dict[str, Any],
        changed_by: UUID,
    ) -> Prospect:
        """Apply a partial update; a status change is logged like change_status."""
        prospect = await self.get_prospect(prospect_id)

        if changes.get("phone") is not None:
            phone = _require_phone(changes["phone"])
            existing = await self._repo.get_by_phone(phone)
            if existing is not None and existing.id != prospect.id:
                raise ConflictError(
                    message="A prospect with this phone number already exists",
                    details={"phone": phone},
                )
            changes = {**changes, "phone": phone}

        for field in _UPDATABLE_FIELDS:
            if field in changes:
                setattr(prospect, field, changes[field])

        new_status = changes.get("status")
        if new_status is not None:
            await self._apply_status(prospect, ProspectStatus(new_status), changed_by, None)

        await self._session.flush()
        await self._session.refresh(prospect)
        return prospect

    async def delete_prospect(self, prospect_id: UUID) -> None:
        """Delete a prospect and its history.

        Raises:
            ConflictError: While the prospect has an open call.
        """
        prospect = await self.get_prospect(prospect_id)
        if await CallAttemptRepository(self._session).find_open(prospect_id) is not None:
            raise ConflictError(
                message="Cannot delete a prospect with an active call",
                details={"prospect_id": str(prospect_id)},
            )
        await self._repo.delete(prospect)
        logger.info("Prospect deleted", extra={"prospect_id": str(prospect_id)})

    async def change_status(
        self,
        prospect_id: UUID,
        new_status: ProspectStatus,
        changed_by: UUID,
        reason: str | None = None,
    ) -> Prospect:
        """Set the status and append a status log entry in the same transaction.

        Setting the current status again writes nothing.
        """
        prospect = await self.get_prospect(prospect_id)
        await self._apply_status(prospect, new_status, changed_by, reason)
        await self._session.flush()
        return prospect

    async def status_history(self, prospect_id: UUID) -> Sequence[ProspectStatusLog]:
        await self.get_prospect(prospect_id)
        return await self._repo.list_status_log(prospect_id)

    async def assign_lead(
        self,
        prospect_id: UUID,
        assigned_to: UUID,
        assigned_by: UUID,
        expires_at: datetime | None = None,
    ) -> LeadAssignment:
        """Route a prospect to an agent.

        Earlier assignments are deactivated; the (prospect, agent) row is
        reused if it exists. Does not gate who may start a call.
        """
        await self.get_prospect(prospect_id)
        if not await self._repo.user_exists(assigned_to):
            raise NotFoundError(
                message="User not found",
                details={"user_id": str(assigned_to)},
            )
        await self._repo.deactivate_assignments(prospect_id)

        assignment = await self._repo.get_assignment(prospect_id, assigned_to)
        if assignment is None:
            assignment = LeadAssignment(prospect_id=prospect_id, assigned_to=assigned_to)
        assignment.assigned_by = assigned_by
        assignment.assigned_at = utcnow()
        assignment.expires_at = expires_at
        assignment.is_active = True
        assignment = await self._repo.save_assignment(assignment)

        logger.info(
            "Lead assigned",
            extra={
                "prospect_id": str(prospect_id),
                "assigned_to": str(assigned_to),
                "assigned_by": str(assigned_by),
            },
        )
        return assignment

    async def get_active_assignment(self, prospect_id: UUID) -> LeadAssignment | None:
        await self.get_prospect(prospect_id)
        return await self._repo.get_active_assignment(prospect_id)

    async def _apply_status(
        self,
        prospect: Prospect,
        new_status: ProspectStatus,
        changed_by: UUID,
        reason: str | None,
    ) -> None:
        old_status = prospect.status
        if old_status == new_status:
            return
        prospect.status = new_status
        await self._repo.add_status_log(
            ProspectStatusLog(
                prospect_id=prospect.id,
                old_status=old_status.value if old_status is not None else None,
                new_status=new_status.value,
                changed_by=changed_by,
                reason=reason,
            )
        )
        logger.info(
            "Prospect status changed",
            extra={
                "prospect_id": str(prospect.id),
                "old_status": old_status.value if old_status is not None else None,
                "new_status": new_status.value,
                "changed_by": str(changed_by),
            },
        )
