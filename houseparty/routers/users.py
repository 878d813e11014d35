from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.dependencies import Principal, get_current_principal
from houseparty.schemas.common import MessageResponse
from houseparty.schemas.user import (
    DeviceTokenRequest,
    FriendsEnvelope,
    ProfileEnvelope,
    ProfileResponse,
    ProfileUpdate,
    SettingsUpdate,
    UserSummary,
)
from houseparty.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=ProfileEnvelope)
async def get_profile(principal: Principal = Depends(get_current_principal)):
    return ProfileEnvelope(user=ProfileResponse.from_user(principal.user))


@router.put("/profile", response_model=ProfileEnvelope)
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    user = await user_service.update_profile(
        db, principal.user, username=body.username, profile_picture=body.profile_picture
    )
    return ProfileEnvelope(user=ProfileResponse.from_user(user))


@router.put("/settings", response_model=ProfileEnvelope)
async def update_settings(
    body: SettingsUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    user = await user_service.update_settings(
        db,
        principal.user,
        notifications=body.notifications,
        auto_join_enabled=body.auto_join_enabled,
        video_quality=body.video_quality,
        audio_quality=body.audio_quality,
        data_usage=body.data_usage,
    )
    return ProfileEnvelope(user=ProfileResponse.from_user(user))


@router.post("/fcm-token", response_model=MessageResponse)
async def register_fcm_token(
    body: DeviceTokenRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await user_service.register_device_token(db, principal.user, body.token)
    return MessageResponse(message="FCM token registered successfully")


@router.delete("/fcm-token", response_model=MessageResponse)
async def unregister_fcm_token(
    body: DeviceTokenRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await user_service.unregister_device_token(db, principal.user, body.token)
    return MessageResponse(message="FCM token removed")


@router.get("/friends/in-house", response_model=FriendsEnvelope)
async def friends_in_house(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    friends = await user_service.friends_in_house(db, principal.user)
    return FriendsEnvelope(friends=[UserSummary.model_validate(f) for f in friends])
