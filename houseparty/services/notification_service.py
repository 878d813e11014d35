"""Notification service: composes and dispatches push notifications for social events."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.config import settings
from houseparty.models.device_token import DeviceToken
from houseparty.models.party import Party
from houseparty.models.user import User
from houseparty.services.push_service import PushDispatcher

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, dispatcher: PushDispatcher):
        self.dispatcher = dispatcher

    async def _tokens_for(self, db: AsyncSession, user_ids: list[int]) -> list[str]:
        """Device tokens of the given users who have notifications switched on."""
        if not user_ids:
            return []
        result = await db.execute(
            select(DeviceToken.token)
            .join(User, User.id == DeviceToken.user_id)
            .where(DeviceToken.user_id.in_(user_ids), User.notifications_enabled.is_(True))
            .order_by(DeviceToken.id)
        )
        return list(result.scalars().all())

    async def notify_users(
        self, db: AsyncSession, user_ids: list[int], body: str, data: dict[str, str]
    ) -> int:
        """Best-effort push to every device of ``user_ids``; never raises."""
        try:
            tokens = await self._tokens_for(db, user_ids)
            if not tokens:
                return 0
            return await self.dispatcher.send_many(tokens, settings.app_name, body, data)
        except Exception as exc:
            logger.error("Failed to notify users %s (%s): %s", user_ids, data.get("type"), exc)
            return 0

    async def friend_request(
        self, db: AsyncSession, sender: User, receiver_id: int, invitation_id: int
    ) -> int:
        return await self.notify_users(
            db,
            [receiver_id],
            f"{sender.username} sent you a friend request",
            {"type": "friend_request", "invitationId": str(invitation_id)},
        )

    async def friend_request_accepted(self, db: AsyncSession, responder: User, sender_id: int) -> int:
        return await self.notify_users(
            db,
            [sender_id],
            f"{responder.username} accepted your friend request",
            {"type": "friend_request_accepted", "userId": str(responder.id)},
        )

    async def participant_joined(
        self, db: AsyncSession, party: Party, user: User, recipient_ids: list[int]
    ) -> int:
        return await self.notify_users(
            db,
            recipient_ids,
            f"{user.username} joined {party.name}",
            {"type": "party_join", "partyId": str(party.id)},
        )

    async def participant_left(
        self, db: AsyncSession, party: Party, user: User, recipient_ids: list[int]
    ) -> int:
        return await self.notify_users(
            db,
            recipient_ids,
            f"{user.username} left {party.name}",
            {"type": "party_leave", "partyId": str(party.id)},
        )

    async def party_invitation(
        self, db: AsyncSession, party: Party, sender: User, receiver_id: int, invitation_id: int
    ) -> int:
        return await self.notify_users(
            db,
            [receiver_id],
            f"{sender.username} invited you to join {party.name}",
            {
                "type": "party_invitation",
                "partyId": str(party.id),
                "invitationId": str(invitation_id),
            },
        )
