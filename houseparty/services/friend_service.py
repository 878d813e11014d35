import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.config import settings
from houseparty.errors import (
    AlreadyFriends,
    AlreadyPending,
    AlreadyResolved,
    Forbidden,
    NotFound,
    ValidationFailed,
)
from houseparty.models.base import as_utc, utcnow
from houseparty.models.friendship import Friendship
from houseparty.models.invitation import Invitation, InvitationKind, InvitationStatus
from houseparty.models.user import User
from houseparty.services.locks import KeyedLocks
from houseparty.services.notification_service import Notifier

logger = logging.getLogger(__name__)


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def friend_ids(db: AsyncSession, user_id: int) -> list[int]:
    result = await db.execute(select(Friendship.friend_id).where(Friendship.user_id == user_id))
    return list(result.scalars().all())


async def are_friends(db: AsyncSession, user_id: int, other_id: int) -> bool:
    result = await db.execute(
        select(Friendship).where(Friendship.user_id == user_id, Friendship.friend_id == other_id)
    )
    return result.scalar_one_or_none() is not None


async def list_friends(db: AsyncSession, user: User) -> list[User]:
    result = await db.execute(
        select(User)
        .join(Friendship, Friendship.friend_id == User.id)
        .where(Friendship.user_id == user.id)
        .order_by(User.username)
    )
    return list(result.scalars().all())


async def list_friend_requests(db: AsyncSession, user: User) -> list[tuple[Invitation, User]]:
    """Pending, unexpired friend requests addressed to ``user`` with their senders."""
    result = await db.execute(
        select(Invitation, User)
        .join(User, User.id == Invitation.sender_id)
        .where(
            Invitation.receiver_id == user.id,
            Invitation.kind == InvitationKind.friend,
            Invitation.status == InvitationStatus.pending,
            Invitation.expires_at > utcnow(),
        )
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
    )
    return [(invitation, sender) for invitation, sender in result.all()]


async def add_friendship(db: AsyncSession, user_id: int, other_id: int) -> None:
    """Record the friendship in both directions; existing rows are left alone."""
    for a, b in ((user_id, other_id), (other_id, user_id)):
        if not await are_friends(db, a, b):
            db.add(Friendship(user_id=a, friend_id=b))
    await db.flush()


async def remove_friendship(db: AsyncSession, user_id: int, other_id: int) -> None:
    await db.execute(
        delete(Friendship).where(
            or_(
                and_(Friendship.user_id == user_id, Friendship.friend_id == other_id),
                and_(Friendship.user_id == other_id, Friendship.friend_id == user_id),
            )
        )
    )


async def resolve_user(
    db: AsyncSession,
    user_id: int | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> User | None:
    if user_id is None and not email and not phone:
        raise ValidationFailed("User ID, email, or phone is required")
    if user_id is not None:
        result = await db.execute(select(User).where(User.id == user_id))
    elif email:
        result = await db.execute(select(User).where(User.email == email.lower()))
    else:
        result = await db.execute(select(User).where(User.phone == phone))
    return result.scalar_one_or_none()


async def _pending_friend_request(db: AsyncSession, sender_id: int, receiver_id: int) -> Invitation | None:
    result = await db.execute(
        select(Invitation).where(
            Invitation.sender_id == sender_id,
            Invitation.receiver_id == receiver_id,
            Invitation.kind == InvitationKind.friend,
            Invitation.status == InvitationStatus.pending,
            Invitation.expires_at > utcnow(),
        )
    )
    return result.scalars().first()


async def search_users(db: AsyncSession, user: User, query: str) -> list[User]:
    """Case-insensitive substring search over username, email and phone.

    The searcher and their friends are left out of the results.
    """
    query = (query or "").strip()
    if not query:
        raise ValidationFailed("Search query is required")

    excluded = [user.id, *await friend_ids(db, user.id)]
    pattern = _like_pattern(query)
    result = await db.execute(
        select(User)
        .where(
            User.id.not_in(excluded),
            or_(
                User.username.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
                User.phone.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(User.username)
        .limit(50)
    )
    return list(result.scalars().all())


async def match_contacts(
    db: AsyncSession, user: User, phones: list[str], emails: list[str]
) -> list[tuple[User, bool]]:
    """Registered users among an address book, each flagged with whether they are already a friend."""
    phones = [p.strip() for p in phones if p and p.strip()]
    emails = [e.strip().lower() for e in emails if e and e.strip()]
    if not phones and not emails:
        return []

    result = await db.execute(
        select(User)
        .where(User.id != user.id, or_(User.phone.in_(phones), User.email.in_(emails)))
        .order_by(User.username)
    )
    friends = set(await friend_ids(db, user.id))
    return [(match, match.id in friends) for match in result.scalars().all()]


@dataclass
class FriendRequestResult:
    invitation: Invitation
    accepted: bool


class FriendGraph:
    """Mutations of the friend graph.

    Requests between the same two users are serialised on the unordered pair,
    so simultaneous A->B and B->A requests collapse into one friendship.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._locks = KeyedLocks()

    @staticmethod
    def _pair(a: int, b: int) -> tuple[int, int]:
        return (a, b) if a <= b else (b, a)

    async def send_friend_request(self, db: AsyncSession, sender: User, receiver: User) -> FriendRequestResult:
        if sender.id == receiver.id:
            raise ValidationFailed("You cannot send a friend request to yourself")

        async with self._locks.hold(self._pair(sender.id, receiver.id)):
            if await are_friends(db, sender.id, receiver.id):
                raise AlreadyFriends()
            if await _pending_friend_request(db, sender.id, receiver.id) is not None:
                raise AlreadyPending()

            invitation = await _pending_friend_request(db, receiver.id, sender.id)
            accepted = invitation is not None
            if accepted:
                invitation.status = InvitationStatus.accepted
                await add_friendship(db, sender.id, receiver.id)
                logger.info("Users %s and %s requested each other; now friends", sender.id, receiver.id)
            else:
                invitation = Invitation(
                    sender_id=sender.id,
                    receiver_id=receiver.id,
                    kind=InvitationKind.friend,
                    status=InvitationStatus.pending,
                    expires_at=utcnow() + timedelta(days=settings.friend_invitation_expire_days),
                )
                db.add(invitation)
            await db.commit()
            await db.refresh(invitation)

        if accepted:
            # the receiver asked first; they hear that it was accepted
            await self.notifier.friend_request_accepted(db, sender, receiver.id)
        else:
            await self.notifier.friend_request(db, sender, receiver.id, invitation.id)
        return FriendRequestResult(invitation=invitation, accepted=accepted)

    async def respond_to_friend_request(
        self, db: AsyncSession, invitation_id: int, responder: User, accept: bool
    ) -> Invitation:
        result = await db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id, Invitation.kind == InvitationKind.friend
            )
        )
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.receiver_id != responder.id:
            raise Forbidden("Not authorized to respond to this invitation")

        async with self._locks.hold(self._pair(invitation.sender_id, responder.id)):
            await db.refresh(invitation)
            if invitation.status != InvitationStatus.pending or as_utc(invitation.expires_at) <= utcnow():
                raise AlreadyResolved()

            invitation.status = InvitationStatus.accepted if accept else InvitationStatus.declined
            if accept:
                await add_friendship(db, responder.id, invitation.sender_id)
            await db.commit()
            await db.refresh(invitation)

        if accept:
            await self.notifier.friend_request_accepted(db, responder, invitation.sender_id)
        return invitation

    async def remove_friend(self, db: AsyncSession, user: User, friend_id: int) -> None:
        async with self._locks.hold(self._pair(user.id, friend_id)):
            await remove_friendship(db, user.id, friend_id)
            await db.commit()
        logger.info("User %s removed friend %s", user.id, friend_id)
