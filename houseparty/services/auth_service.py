import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.errors import (
    AuthenticationFailed,
    Conflict,
    InvalidCode,
    InvalidCredentials,
    NotFound,
    ValidationFailed,
)
from houseparty.models.otp import OtpPurpose
from houseparty.models.user import User
from houseparty.services.hashing import hash_password, verify_password
from houseparty.services.otp_service import consume_otp, issue_otp
from houseparty.services.token_service import TokenKind, TokenPair, TokenService
from houseparty.tasks.email_sender import send_otp_email, send_password_reset_email, send_phone_otp_email

logger = logging.getLogger(__name__)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_phone(db: AsyncSession, phone: str) -> User | None:
    result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _check_unique(db: AsyncSession, username: str, email: str, phone: str) -> None:
    result = await db.execute(
        select(User).where(or_(User.email == email, User.username == username, User.phone == phone))
    )
    existing = list(result.scalars().all())
    if any(u.email == email for u in existing):
        raise Conflict("Email already in use")
    if any(u.username == username for u in existing):
        raise Conflict("Username already taken")
    if any(u.phone == phone for u in existing):
        raise Conflict("Phone number already in use")


async def register_user(
    db: AsyncSession, username: str, email: str, phone: str, password: str
) -> User:
    """Create an unverified account and email it a verification code."""
    email = email.lower()
    await _check_unique(db, username, email, phone)

    user = User(
        username=username,
        email=email,
        phone=phone,
        hashed_password=await hash_password(password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # another registration took the email, username or phone after our check
        await db.rollback()
        await _check_unique(db, username, email, phone)
        raise Conflict("Account already exists")
    await db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.username)

    code = await issue_otp(db, email, OtpPurpose.email_verification)
    if not await send_otp_email(email, code):
        # The account exists either way; the user can ask for a new code.
        logger.warning("Verification email for user %s was not delivered", user.id)
    return user


async def verify_email(
    db: AsyncSession, tokens: TokenService, email: str, code: str
) -> tuple[User, TokenPair]:
    if not await consume_otp(db, email, code, OtpPurpose.email_verification):
        raise InvalidCode()

    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")
    user.is_email_verified = True
    await db.commit()
    await db.refresh(user)
    return user, tokens.issue_token_pair(user.id)


async def resend_otp(db: AsyncSession, email: str, purpose: OtpPurpose) -> None:
    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")
    if purpose == OtpPurpose.email_verification and user.is_email_verified:
        raise ValidationFailed("Email already verified")
    if purpose == OtpPurpose.phone_verification and user.is_phone_verified:
        raise ValidationFailed("Phone already verified")

    code = await issue_otp(db, user.email, purpose)
    if purpose == OtpPurpose.password_reset:
        await send_password_reset_email(user.email, code)
    elif purpose == OtpPurpose.phone_verification:
        await send_phone_otp_email(user.email, code)
    else:
        await send_otp_email(user.email, code)


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User | None:
    user = await get_user_by_email(db, email)
    if user is None:
        return None
    if not await verify_password(password, user.hashed_password):
        return None
    return user


async def login(
    db: AsyncSession, tokens: TokenService, email: str, password: str
) -> tuple[User, TokenPair]:
    user = await authenticate_user(db, email, password)
    if user is None:
        # Same error for unknown email and wrong password
        raise InvalidCredentials()
    return user, tokens.issue_token_pair(user.id)


async def refresh_tokens(db: AsyncSession, tokens: TokenService, refresh_token: str) -> TokenPair:
    user_id = tokens.verify(refresh_token, TokenKind.refresh)
    if user_id is None or await get_user_by_id(db, user_id) is None:
        raise AuthenticationFailed("Invalid or expired refresh token")
    return tokens.issue_token_pair(user_id)


async def forgot_password(db: AsyncSession, email: str) -> None:
    await resend_otp(db, email, OtpPurpose.password_reset)


async def reset_password(db: AsyncSession, email: str, code: str, new_password: str) -> None:
    if not await consume_otp(db, email, code, OtpPurpose.password_reset):
        raise InvalidCode()

    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFound("User not found")
    user.hashed_password = await hash_password(new_password)
    await db.commit()
    logger.info("Password reset for user %s", user.id)


async def change_password(
    db: AsyncSession, user: User, current_password: str, new_password: str
) -> None:
    if not await verify_password(current_password, user.hashed_password):
        raise AuthenticationFailed("Current password is incorrect")
    user.hashed_password = await hash_password(new_password)
    await db.commit()
    logger.info("Password changed for user %s", user.id)


async def verify_phone(db: AsyncSession, user: User, code: str) -> User:
    if not await consume_otp(db, user.email, code, OtpPurpose.phone_verification):
        raise InvalidCode()
    user.is_phone_verified = True
    await db.commit()
    await db.refresh(user)
    return user
