from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.dependencies import Principal, get_current_principal, get_party_registry
from houseparty.errors import NotFound
from houseparty.schemas.friend import InvitationResponse
from houseparty.schemas.party import (
    InvitationEnvelope,
    InvitationsEnvelope,
    PartiesEnvelope,
    PartyCreate,
    PartyEnvelope,
    PartyInvite,
    PartyResponse,
    PartySessionEnvelope,
    VideoCredentialResponse,
)
from houseparty.services import party_service
from houseparty.services.party_service import PartyRegistry, PartySession

router = APIRouter(prefix="/parties", tags=["parties"])


def _session_envelope(session: PartySession, message: str) -> PartySessionEnvelope:
    credential = session.credential
    return PartySessionEnvelope(
        message=message,
        party=PartyResponse.build(session.party, session.participant_ids),
        token=credential.token,
        uid=credential.uid,
        video=VideoCredentialResponse.build(credential),
    )


@router.get("", response_model=PartiesEnvelope)
async def list_parties(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    parties = await party_service.list_parties_for_user(db, principal.user)
    return PartiesEnvelope(
        parties=[
            PartyResponse.build(p, await party_service.get_participant_ids(db, p.id)) for p in parties
        ]
    )


@router.post("", response_model=PartySessionEnvelope, status_code=status.HTTP_201_CREATED)
async def create_party(
    body: PartyCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    registry: PartyRegistry = Depends(get_party_registry),
):
    session = await registry.create_party(db, principal.user, body.name, body.capacity)
    return _session_envelope(session, "Party created successfully")


@router.get("/invitations", response_model=InvitationsEnvelope)
async def list_invitations(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    invitations = await party_service.list_party_invitations(db, principal.user)
    return InvitationsEnvelope(
        invitations=[InvitationResponse.model_validate(i) for i in invitations]
    )


@router.get("/{party_id}", response_model=PartyEnvelope)
async def get_party(
    party_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    party = await party_service.get_party(db, party_id)
    if party is None:
        raise NotFound("Party not found")
    participant_ids = await party_service.get_participant_ids(db, party.id)
    return PartyEnvelope(party=PartyResponse.build(party, participant_ids))


@router.post("/{party_id}/join", response_model=PartySessionEnvelope)
async def join_party(
    party_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    registry: PartyRegistry = Depends(get_party_registry),
):
    session = await registry.join_party(db, party_id, principal.user)
    message = "Already in party" if session.already_joined else "Joined party successfully"
    return _session_envelope(session, message)


@router.post("/{party_id}/leave", response_model=PartyEnvelope)
async def leave_party(
    party_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    registry: PartyRegistry = Depends(get_party_registry),
):
    session = await registry.leave_party(db, party_id, principal.user)
    message = "Left party successfully" if session.party.is_active else "Party ended"
    return PartyEnvelope(
        message=message, party=PartyResponse.build(session.party, session.participant_ids)
    )


@router.post("/{party_id}/invite", response_model=InvitationEnvelope, status_code=status.HTTP_201_CREATED)
async def invite_to_party(
    party_id: int,
    body: PartyInvite,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    registry: PartyRegistry = Depends(get_party_registry),
):
    invitation = await registry.invite_to_party(
        db,
        party_id,
        principal.user,
        user_id=body.user_id,
        email=str(body.email) if body.email else None,
        phone=body.phone,
    )
    return InvitationEnvelope(
        message="Invitation sent successfully",
        invitation=InvitationResponse.model_validate(invitation),
    )
