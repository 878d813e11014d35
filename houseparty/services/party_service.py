import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from houseparty.config import settings
from houseparty.errors import (
    Conflict,
    NotAMember,
    NotFound,
    NotInParty,
    PartyFull,
    PartyInactive,
    ValidationFailed,
)
from houseparty.models.base import utcnow
from houseparty.models.invitation import Invitation, InvitationKind, InvitationStatus
from houseparty.models.party import Party, PartyParticipant
from houseparty.models.user import User
from houseparty.realtime.presence import PresenceCoordinator
from houseparty.services.friend_service import friend_ids, resolve_user
from houseparty.services.locks import KeyedLocks
from houseparty.services.notification_service import Notifier
from houseparty.services.video_service import VideoCredential, VideoTokenIssuer
from houseparty.tasks.email_sender import send_invitation_email

logger = logging.getLogger(__name__)


@dataclass
class PartySession:
    party: Party
    participant_ids: list[int]
    credential: VideoCredential | None = None
    already_joined: bool = False


async def get_party(db: AsyncSession, party_id: int) -> Party | None:
    result = await db.execute(
        select(Party).where(Party.id == party_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_participants(db: AsyncSession, party_id: int) -> list[PartyParticipant]:
    """Participants in join order; the first one is next in line for host."""
    result = await db.execute(
        select(PartyParticipant)
        .where(PartyParticipant.party_id == party_id)
        .order_by(PartyParticipant.joined_at, PartyParticipant.id)
    )
    return list(result.scalars().all())


async def get_participant_ids(db: AsyncSession, party_id: int) -> list[int]:
    return [p.user_id for p in await get_participants(db, party_id)]


async def channel_name_taken(db: AsyncSession, channel_name: str) -> bool:
    result = await db.execute(select(Party.id).where(Party.channel_name == channel_name))
    return result.scalar_one_or_none() is not None


async def get_party_by_channel(db: AsyncSession, channel_name: str) -> Party | None:
    result = await db.execute(select(Party).where(Party.channel_name == channel_name))
    return result.scalar_one_or_none()


async def list_parties_for_user(db: AsyncSession, user: User) -> list[Party]:
    """Active parties hosted or attended by the user or any of their friends."""
    circle = [user.id, *await friend_ids(db, user.id)]
    attended = select(PartyParticipant.party_id).where(PartyParticipant.user_id.in_(circle))
    result = await db.execute(
        select(Party)
        .where(
            Party.is_active.is_(True),
            or_(Party.host_user_id.in_(circle), Party.id.in_(attended)),
        )
        .order_by(Party.created_at.desc(), Party.id.desc())
    )
    return list(result.scalars().all())


async def list_party_invitations(db: AsyncSession, user: User) -> list[Invitation]:
    result = await db.execute(
        select(Invitation)
        .where(
            Invitation.receiver_id == user.id,
            Invitation.kind == InvitationKind.party,
            Invitation.status == InvitationStatus.pending,
            Invitation.expires_at > utcnow(),
        )
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
    )
    return list(result.scalars().all())


class PartyRegistry:
    """Party lifecycle: create, join, leave, invite.

    Every mutation of a party runs under that party's lock, and the party
    row's version counter rejects writes based on a stale read from another
    process.
    """

    def __init__(self, video: VideoTokenIssuer, notifier: Notifier, presence: PresenceCoordinator):
        self.video = video
        self.notifier = notifier
        self.presence = presence
        self._locks = KeyedLocks()

    async def _commit(self, db: AsyncSession) -> None:
        try:
            await db.commit()
        except (StaleDataError, IntegrityError) as exc:
            await db.rollback()
            logger.warning("Concurrent party update rejected: %s", exc)
            raise Conflict("Party was modified concurrently, please retry")

    async def _new_channel_name(self, db: AsyncSession, host: User) -> str:
        while True:
            channel = f"party_{int(time.time() * 1000)}_{host.id}_{secrets.token_hex(3)}"
            if not await channel_name_taken(db, channel):
                return channel

    def _credential(self, party: Party, user: User) -> VideoCredential:
        return self.video.issue(party.channel_name, self.video.uid_for(user.id))

    async def create_party(
        self, db: AsyncSession, host: User, name: str, capacity: int | None = None
    ) -> PartySession:
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Party name is required")
        capacity = settings.party_default_capacity if capacity is None else capacity
        if not settings.party_min_capacity <= capacity <= settings.party_max_capacity:
            raise ValidationFailed(
                f"Capacity must be between {settings.party_min_capacity} and {settings.party_max_capacity}"
            )

        channel = await self._new_channel_name(db, host)
        credential = self.video.issue(channel, self.video.uid_for(host.id))

        party = Party(name=name, host_user_id=host.id, channel_name=channel, capacity=capacity)
        db.add(party)
        await db.flush()  # get party.id before adding the host as participant
        db.add(PartyParticipant(party_id=party.id, user_id=host.id))
        await self._commit(db)
        await db.refresh(party)
        logger.info("User %s created party %s (%s)", host.id, party.id, channel)

        await self.presence.broadcast_house(
            "party_created", {"partyId": party.id, "name": party.name, "hostId": host.id}
        )
        return PartySession(party=party, participant_ids=[host.id], credential=credential)

    async def join_party(self, db: AsyncSession, party_id: int, user: User) -> PartySession:
        async with self._locks.hold(party_id):
            party = await get_party(db, party_id)
            if party is None:
                raise NotFound("Party not found")
            if not party.is_active:
                raise PartyInactive()

            participant_ids = await get_participant_ids(db, party.id)
            if user.id in participant_ids:
                # Re-joining only hands out a fresh credential.
                return PartySession(
                    party=party,
                    participant_ids=participant_ids,
                    credential=self._credential(party, user),
                    already_joined=True,
                )
            if len(participant_ids) >= party.capacity:
                raise PartyFull()

            credential = self._credential(party, user)
            db.add(PartyParticipant(party_id=party.id, user_id=user.id))
            party.updated_at = utcnow()
            await self._commit(db)
            await db.refresh(party)
            others = list(participant_ids)
            participant_ids.append(user.id)
        logger.info("User %s joined party %s", user.id, party.id)

        await self.notifier.participant_joined(db, party, user, others)
        await self.presence.broadcast_party(
            party.id, "participant_joined", {"partyId": party.id, "userId": user.id}
        )
        return PartySession(party=party, participant_ids=participant_ids, credential=credential)

    async def leave_party(self, db: AsyncSession, party_id: int, user: User) -> PartySession:
        async with self._locks.hold(party_id):
            party = await get_party(db, party_id)
            if party is None:
                raise NotFound("Party not found")

            participant_ids = await get_participant_ids(db, party.id)
            if user.id not in participant_ids:
                raise NotInParty()

            await db.execute(
                delete(PartyParticipant).where(
                    PartyParticipant.party_id == party.id, PartyParticipant.user_id == user.id
                )
            )
            remaining = [uid for uid in participant_ids if uid != user.id]
            if party.host_user_id == user.id and remaining:
                party.host_user_id = remaining[0]
                logger.info("Party %s host passed from %s to %s", party.id, user.id, remaining[0])
            if not remaining:
                party.is_active = False
                party.ended_at = utcnow()
            party.updated_at = utcnow()
            await self._commit(db)
            await db.refresh(party)
            await self.presence.remove_user_from_party_room(user.id, party.id)
        logger.info("User %s left party %s", user.id, party.id)

        if remaining:
            await self.notifier.participant_left(db, party, user, remaining)
            await self.presence.broadcast_party(
                party.id,
                "participant_left",
                {"partyId": party.id, "userId": user.id, "hostId": party.host_user_id},
            )
        else:
            logger.info("Party %s ended", party.id)
            await self.presence.broadcast_house("party_ended", {"partyId": party.id})
            await self.presence.close_party_room(party.id)
        return PartySession(party=party, participant_ids=remaining)

    async def invite_to_party(
        self,
        db: AsyncSession,
        party_id: int,
        sender: User,
        user_id: int | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> Invitation:
        if user_id is None and not email and not phone:
            raise ValidationFailed("User ID, phone, or email is required")

        party = await get_party(db, party_id)
        if party is None:
            raise NotFound("Party not found")
        if not party.is_active:
            raise PartyInactive()
        if sender.id not in await get_participant_ids(db, party.id):
            raise NotAMember()

        receiver = await resolve_user(db, user_id=user_id, email=email, phone=phone)
        if user_id is not None and receiver is None:
            raise NotFound("User not found")

        invitation = Invitation(
            sender_id=sender.id,
            receiver_id=receiver.id if receiver else None,
            receiver_contact=None if receiver else (email.lower() if email else phone),
            party_id=party.id,
            kind=InvitationKind.party,
            status=InvitationStatus.pending,
            expires_at=utcnow() + timedelta(hours=settings.party_invitation_expire_hours),
        )
        db.add(invitation)
        await db.commit()
        await db.refresh(invitation)
        logger.info("User %s invited %s to party %s", sender.id, receiver.id if receiver else "a contact", party.id)

        if receiver is not None:
            await self.notifier.party_invitation(db, party, sender, receiver.id, invitation.id)
        elif email:
            await send_invitation_email(email, sender.username, party.name, party.id)
        return invitation
