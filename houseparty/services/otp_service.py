"""One-time codes for email/phone verification and password reset.

Only a bcrypt hash of each code is stored. Issuing a code deletes every
earlier code for the same (email, purpose), so at most one is ever active.
"""

import asyncio
import logging
import secrets
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.config import settings
from houseparty.models.base import utcnow
from houseparty.models.otp import OneTimeCode, OtpPurpose
from houseparty.services.hashing import hash_secret, verify_secret

logger = logging.getLogger(__name__)


def generate_code(length: int | None = None) -> str:
    length = length or settings.otp_length
    return "".join(secrets.choice("0123456789") for _ in range(length))


async def issue_otp(db: AsyncSession, email: str, purpose: OtpPurpose) -> str:
    """Create a fresh code for (email, purpose) and return it in plaintext for delivery."""
    email = email.lower()
    await db.execute(
        delete(OneTimeCode).where(OneTimeCode.email == email, OneTimeCode.purpose == purpose)
    )

    code = generate_code()
    loop = asyncio.get_running_loop()
    code_hash = await loop.run_in_executor(None, hash_secret, code)
    db.add(
        OneTimeCode(
            email=email,
            purpose=purpose,
            code_hash=code_hash,
            expires_at=utcnow() + timedelta(minutes=settings.otp_expire_minutes),
        )
    )
    await db.commit()
    logger.info("Issued %s code for %s", purpose.value, email)
    return code


async def consume_otp(db: AsyncSession, email: str, code: str, purpose: OtpPurpose) -> bool:
    """Check ``code`` against the active codes for (email, purpose).

    A matching record is deleted so the code cannot be used twice. The caller
    is responsible for committing.
    """
    result = await db.execute(
        select(OneTimeCode).where(
            OneTimeCode.email == email.lower(),
            OneTimeCode.purpose == purpose,
            OneTimeCode.used.is_(False),
            OneTimeCode.expires_at > utcnow(),
        )
    )
    loop = asyncio.get_running_loop()
    for record in result.scalars().all():
        if await loop.run_in_executor(None, verify_secret, code, record.code_hash):
            await db.delete(record)
            await db.flush()
            return True
    return False


async def purge_expired_otps(db: AsyncSession) -> int:
    result = await db.execute(delete(OneTimeCode).where(OneTimeCode.expires_at <= utcnow()))
    await db.commit()
    return result.rowcount or 0
