"""Periodic removal of expired one-time codes and invitations.

Expiry is already enforced when records are read; the sweep only keeps the
tables from growing.
"""

import asyncio
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from houseparty.models.base import utcnow
from houseparty.models.invitation import Invitation, InvitationStatus
from houseparty.services.otp_service import purge_expired_otps

logger = logging.getLogger(__name__)


async def expire_invitations(db: AsyncSession) -> int:
    result = await db.execute(
        update(Invitation)
        .where(Invitation.status == InvitationStatus.pending, Invitation.expires_at <= utcnow())
        .values(status=InvitationStatus.expired)
    )
    await db.commit()
    return result.rowcount or 0


async def sweep_once(session_factory: async_sessionmaker) -> tuple[int, int]:
    async with session_factory() as db:
        otps = await purge_expired_otps(db)
        invitations = await expire_invitations(db)
    if otps or invitations:
        logger.info("Swept %d expired codes and %d expired invitations", otps, invitations)
    return otps, invitations


async def run_sweeper(session_factory: async_sessionmaker, interval_seconds: float) -> None:
    while True:
        try:
            await sweep_once(session_factory)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Expired-record sweep failed: %s", exc)
        await asyncio.sleep(interval_seconds)
