from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.dependencies import Principal, get_current_principal, get_friend_graph
from houseparty.errors import NotFound
from houseparty.schemas.common import MessageResponse
from houseparty.schemas.friend import (
    ContactMatch,
    ContactMatchesEnvelope,
    ContactMatchRequest,
    FriendRequestCreate,
    FriendRequestRespond,
    FriendRequestResponse,
    FriendRequestsEnvelope,
    FriendRequestSent,
    InvitationResponse,
)
from houseparty.schemas.user import FriendsEnvelope, UserSummary, UsersEnvelope
from houseparty.services import friend_service
from houseparty.services.friend_service import FriendGraph

router = APIRouter(prefix="/friends", tags=["friends"])


@router.get("", response_model=FriendsEnvelope)
async def list_friends(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    friends = await friend_service.list_friends(db, principal.user)
    return FriendsEnvelope(friends=[UserSummary.model_validate(f) for f in friends])


@router.get("/requests", response_model=FriendRequestsEnvelope)
async def list_friend_requests(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    pending = await friend_service.list_friend_requests(db, principal.user)
    return FriendRequestsEnvelope(
        requests=[
            FriendRequestResponse(
                **InvitationResponse.model_validate(invitation).model_dump(),
                sender=UserSummary.model_validate(sender),
            )
            for invitation, sender in pending
        ]
    )


@router.post("/request", response_model=FriendRequestSent)
async def send_friend_request(
    body: FriendRequestCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    graph: FriendGraph = Depends(get_friend_graph),
):
    receiver = await friend_service.resolve_user(
        db, user_id=body.user_id, email=str(body.email) if body.email else None, phone=body.phone
    )
    if receiver is None:
        raise NotFound("User not found")
    outcome = await graph.send_friend_request(db, principal.user, receiver)
    return FriendRequestSent(
        message="Friend request accepted" if outcome.accepted else "Friend request sent",
        invitation=InvitationResponse.model_validate(outcome.invitation),
    )


@router.post("/respond", response_model=MessageResponse)
async def respond_to_friend_request(
    body: FriendRequestRespond,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    graph: FriendGraph = Depends(get_friend_graph),
):
    await graph.respond_to_friend_request(db, body.invitation_id, principal.user, body.accept)
    return MessageResponse(
        message="Friend request accepted" if body.accept else "Friend request declined"
    )


@router.get("/search", response_model=UsersEnvelope)
async def search_users(
    query: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    users = await friend_service.search_users(db, principal.user, query)
    return UsersEnvelope(users=[UserSummary.model_validate(u) for u in users])


@router.post("/match-contacts", response_model=ContactMatchesEnvelope)
async def match_contacts(
    body: ContactMatchRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    matches = await friend_service.match_contacts(db, principal.user, body.phones, body.emails)
    return ContactMatchesEnvelope(
        matches=[
            ContactMatch(**UserSummary.model_validate(user).model_dump(), is_friend=is_friend)
            for user, is_friend in matches
        ]
    )


@router.delete("/{friend_id}", response_model=MessageResponse)
async def remove_friend(
    friend_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    graph: FriendGraph = Depends(get_friend_graph),
):
    await graph.remove_friend(db, principal.user, friend_id)
    return MessageResponse(message="Friend removed")
