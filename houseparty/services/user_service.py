import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.errors import Conflict, ValidationFailed
from houseparty.models.base import utcnow
from houseparty.models.device_token import DeviceToken
from houseparty.models.friendship import Friendship
from houseparty.models.user import DataUsage, Quality, User

logger = logging.getLogger(__name__)


async def update_profile(
    db: AsyncSession, user: User, username: str | None = None, profile_picture: str | None = None
) -> User:
    if username is not None and username != user.username:
        if not 3 <= len(username) <= 30:
            raise ValidationFailed("Username must be between 3 and 30 characters")
        result = await db.execute(select(User.id).where(User.username == username))
        if result.scalar_one_or_none() is not None:
            raise Conflict("Username already taken")
        user.username = username
    if profile_picture is not None:
        user.profile_picture = profile_picture
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Username already taken")
    await db.refresh(user)
    return user


async def update_settings(
    db: AsyncSession,
    user: User,
    notifications: bool | None = None,
    auto_join_enabled: bool | None = None,
    video_quality: Quality | None = None,
    audio_quality: Quality | None = None,
    data_usage: DataUsage | None = None,
) -> User:
    """Apply only the settings that were given; the rest keep their current value."""
    if notifications is not None:
        user.notifications_enabled = notifications
    if auto_join_enabled is not None:
        user.auto_join_enabled = auto_join_enabled
    if video_quality is not None:
        user.video_quality = video_quality
    if audio_quality is not None:
        user.audio_quality = audio_quality
    if data_usage is not None:
        user.data_usage = data_usage
    await db.commit()
    await db.refresh(user)
    return user


async def list_device_tokens(db: AsyncSession, user_id: int) -> list[str]:
    result = await db.execute(
        select(DeviceToken.token).where(DeviceToken.user_id == user_id).order_by(DeviceToken.id)
    )
    return list(result.scalars().all())


async def register_device_token(db: AsyncSession, user: User, token: str) -> None:
    token = token.strip()
    if not token:
        raise ValidationFailed("FCM token is required")
    if token in await list_device_tokens(db, user.id):
        return
    db.add(DeviceToken(user_id=user.id, token=token))
    await db.commit()
    logger.info("Registered device token for user %s", user.id)


async def unregister_device_token(db: AsyncSession, user: User, token: str) -> None:
    await db.execute(
        delete(DeviceToken).where(DeviceToken.user_id == user.id, DeviceToken.token == token)
    )
    await db.commit()


async def set_presence(db: AsyncSession, user_id: int, in_house: bool) -> None:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return
    user.is_in_house = in_house
    user.last_active_at = utcnow()
    await db.commit()


async def friends_in_house(db: AsyncSession, user: User) -> list[User]:
    result = await db.execute(
        select(User)
        .join(Friendship, Friendship.friend_id == User.id)
        .where(Friendship.user_id == user.id, User.is_in_house.is_(True))
        .order_by(User.username)
    )
    return list(result.scalars().all())
