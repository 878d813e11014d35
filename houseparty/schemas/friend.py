from datetime import datetime
from typing import Optional

from pydantic import EmailStr

from houseparty.models.invitation import InvitationKind, InvitationStatus
from houseparty.schemas.common import CamelModel, Envelope
from houseparty.schemas.user import UserSummary


class InvitationResponse(CamelModel):
    id: int
    sender_id: int
    receiver_id: Optional[int]
    receiver_contact: Optional[str]
    party_id: Optional[int]
    kind: InvitationKind
    status: InvitationStatus
    expires_at: datetime
    created_at: datetime


class FriendRequestResponse(InvitationResponse):
    sender: UserSummary


class FriendRequestsEnvelope(Envelope):
    requests: list[FriendRequestResponse]


class FriendRequestCreate(CamelModel):
    user_id: Optional[int] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class FriendRequestSent(Envelope):
    message: str
    invitation: InvitationResponse


class FriendRequestRespond(CamelModel):
    invitation_id: int
    accept: bool


class ContactMatchRequest(CamelModel):
    phones: list[str] = []
    emails: list[str] = []


class ContactMatch(UserSummary):
    is_friend: bool


class ContactMatchesEnvelope(Envelope):
    matches: list[ContactMatch]
