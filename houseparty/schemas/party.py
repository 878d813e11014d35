from datetime import datetime
from typing import Optional

from pydantic import EmailStr, field_validator

from houseparty.config import settings
from houseparty.models.party import Party
from houseparty.schemas.common import CamelModel, Envelope
from houseparty.schemas.friend import InvitationResponse
from houseparty.services.video_service import VideoCredential


class PartyCreate(CamelModel):
    name: str
    capacity: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Party name is required")
        return v

    @field_validator("capacity")
    @classmethod
    def validate_capacity(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not settings.party_min_capacity <= v <= settings.party_max_capacity:
            raise ValueError(
                f"capacity must be between {settings.party_min_capacity} and {settings.party_max_capacity}"
            )
        return v


class PartyResponse(CamelModel):
    id: int
    name: str
    host_id: int
    channel_name: str
    capacity: int
    is_active: bool
    participants: list[int]
    started_at: datetime
    ended_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def build(cls, party: Party, participant_ids: list[int]) -> "PartyResponse":
        return cls(
            id=party.id,
            name=party.name,
            host_id=party.host_user_id,
            channel_name=party.channel_name,
            capacity=party.capacity,
            is_active=party.is_active,
            participants=participant_ids,
            started_at=party.started_at,
            ended_at=party.ended_at,
            created_at=party.created_at,
        )


class VideoCredentialResponse(CamelModel):
    token: str
    uid: int
    channel_name: str
    expires_at: int
    expires_in: int

    @classmethod
    def build(cls, credential: VideoCredential) -> "VideoCredentialResponse":
        return cls(
            token=credential.token,
            uid=credential.uid,
            channel_name=credential.channel_name,
            expires_at=credential.expires_at,
            expires_in=credential.expires_in,
        )


class PartyEnvelope(Envelope):
    party: PartyResponse
    message: Optional[str] = None


class PartiesEnvelope(Envelope):
    parties: list[PartyResponse]


class PartySessionEnvelope(PartyEnvelope):
    """A party together with the caller's video credential for its channel."""
    token: str
    uid: int
    video: VideoCredentialResponse


class PartyInvite(CamelModel):
    user_id: Optional[int] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class InvitationEnvelope(Envelope):
    message: str
    invitation: InvitationResponse


class InvitationsEnvelope(Envelope):
    invitations: list[InvitationResponse]


class VideoTokenRequest(CamelModel):
    channel_name: str
    uid: Optional[int] = None


class VideoTokenResponse(Envelope):
    token: str
    uid: int
    channel_name: str
    expires_in: int
    expires_at: int
