from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.dependencies import Principal, get_current_principal, get_video_issuer
from houseparty.errors import Forbidden, NotFound, PartyInactive, ValidationFailed
from houseparty.schemas.party import VideoTokenRequest, VideoTokenResponse
from houseparty.services import party_service
from houseparty.services.video_service import VideoTokenIssuer

router = APIRouter(prefix="/video", tags=["video"])


@router.post("/token", response_model=VideoTokenResponse)
async def issue_video_token(
    body: VideoTokenRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    video: VideoTokenIssuer = Depends(get_video_issuer),
):
    """Fresh credential for the channel of a party the caller is in."""
    channel_name = body.channel_name.strip()
    if not channel_name:
        raise ValidationFailed("Channel name is required")
    uid = video.uid_for(principal.user_id)
    if body.uid is not None and body.uid != uid:
        raise Forbidden("Cannot request a credential for another user")

    party = await party_service.get_party_by_channel(db, channel_name)
    if party is None:
        raise NotFound("Party not found")
    if not party.is_active:
        raise PartyInactive()
    if principal.user_id not in await party_service.get_participant_ids(db, party.id):
        raise Forbidden("Not in party")

    credential = video.issue(channel_name, uid)
    return VideoTokenResponse(
        token=credential.token,
        uid=credential.uid,
        channel_name=credential.channel_name,
        expires_in=credential.expires_in,
        expires_at=credential.expires_at,
    )
