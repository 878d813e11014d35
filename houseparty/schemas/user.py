from datetime import datetime
from typing import Optional

from houseparty.models.user import DataUsage, Quality, User
from houseparty.schemas.common import CamelModel, Envelope


class UserResponse(CamelModel):
    id: int
    username: str
    email: str
    phone: str
    profile_picture: str
    is_email_verified: bool
    is_phone_verified: bool
    created_at: datetime


class UserSummary(CamelModel):
    id: int
    username: str
    email: str
    phone: str
    profile_picture: str
    is_in_house: bool
    last_active_at: Optional[datetime]


class UserSettings(CamelModel):
    notifications: bool = True
    auto_join_enabled: bool = True
    video_quality: Quality = Quality.standard
    audio_quality: Quality = Quality.standard
    data_usage: DataUsage = DataUsage.balanced

    @classmethod
    def from_user(cls, user: User) -> "UserSettings":
        return cls(
            notifications=user.notifications_enabled,
            auto_join_enabled=user.auto_join_enabled,
            video_quality=user.video_quality,
            audio_quality=user.audio_quality,
            data_usage=user.data_usage,
        )


class ProfileResponse(UserResponse):
    is_in_house: bool
    last_active_at: Optional[datetime]
    settings: UserSettings

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            phone=user.phone,
            profile_picture=user.profile_picture,
            is_email_verified=user.is_email_verified,
            is_phone_verified=user.is_phone_verified,
            created_at=user.created_at,
            is_in_house=user.is_in_house,
            last_active_at=user.last_active_at,
            settings=UserSettings.from_user(user),
        )


class UserEnvelope(Envelope):
    user: UserResponse
    message: Optional[str] = None


class ProfileEnvelope(Envelope):
    user: ProfileResponse


class UsersEnvelope(Envelope):
    users: list[UserSummary]


class FriendsEnvelope(Envelope):
    friends: list[UserSummary]


class ProfileUpdate(CamelModel):
    username: Optional[str] = None
    profile_picture: Optional[str] = None


class SettingsUpdate(CamelModel):
    notifications: Optional[bool] = None
    auto_join_enabled: Optional[bool] = None
    video_quality: Optional[Quality] = None
    audio_quality: Optional[Quality] = None
    data_usage: Optional[DataUsage] = None


class DeviceTokenRequest(CamelModel):
    token: str
