"""
Outing mirror: the minimal slice of the club's outings the carpool core needs.

Outings are created and owned by the wider application. This service keeps
a local record of start time and cancellation state, answers the
OutingRegistry questions, and forwards cancellations into the cascade.
"""

from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from carpool.core.exceptions import NotOwner, OutingNotFound
from carpool.core.logging import get_logger
from carpool.db.base import as_utc
from carpool.models.outing import Outing, OutingStatus
from carpool.schemas.outing import OutingCreate
from carpool.services import cascade_service
from carpool.services.interfaces.outing_registry import OutingRegistry

logger = get_logger(__name__)


class SqlOutingRegistry(OutingRegistry):
    """OutingRegistry over the `outings` table, bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, outing_id: int) -> Outing | None:
        return await self.db.get(Outing, outing_id)

    async def exists(self, outing_id: int) -> bool:
        return await self._load(outing_id) is not None

    async def is_started(self, outing_id: int) -> bool:
        outing = await self._load(outing_id)
        if outing is None:
            return False
        return as_utc(outing.starts_at) <= datetime.now(timezone.utc)

    async def is_cancelled(self, outing_id: int) -> bool:
        outing = await self._load(outing_id)
        return outing is not None and outing.status == OutingStatus.CANCELLED


async def create_outing(db: AsyncSession, outing_data: OutingCreate, organizer_id: int) -> Outing:
    if as_utc(outing_data.starts_at) <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Outing start must be in the future",
        )

    outing = Outing(
        title=outing_data.title,
        location=outing_data.location,
        starts_at=outing_data.starts_at,
        organizer_id=organizer_id,
        status=OutingStatus.SCHEDULED,
    )
    db.add(outing)
    await db.commit()
    await db.refresh(outing)

    logger.info("outing_created", outing_id=outing.id, starts_at=str(outing.starts_at))
    return outing


async def get_outing(db: AsyncSession, outing_id: int) -> Outing:
    result = await db.execute(select(Outing).where(Outing.id == outing_id))
    outing = result.scalar_one_or_none()

    if not outing:
        raise OutingNotFound(f"Outing {outing_id} not found")
    return outing


async def cancel_outing(
    db: AsyncSession,
    outing_id: int,
    requester_id: int,
) -> cascade_service.CascadeResult:
    """Cancel an outing on behalf of its organizer and cascade to its trips."""
    outing = await get_outing(db, outing_id)
    if outing.organizer_id != requester_id:
        raise NotOwner("Only the organizer can cancel this outing")

    return await cascade_service.on_outing_cancelled(db, outing_id)
