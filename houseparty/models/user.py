import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String, func
from sqlalchemy.orm import Mapped, mapped_column

from houseparty.models.base import Base


class Quality(str, enum.Enum):
    low = "low"
    standard = "standard"
    high = "high"


class DataUsage(str, enum.Enum):
    low = "low"
    balanced = "balanced"
    high = "high"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_picture: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_in_house: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # Per-user settings
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_join_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    video_quality: Mapped[Quality] = mapped_column(
        Enum(Quality), nullable=False, default=Quality.standard
    )
    audio_quality: Mapped[Quality] = mapped_column(
        Enum(Quality), nullable=False, default=Quality.standard
    )
    data_usage: Mapped[DataUsage] = mapped_column(
        Enum(DataUsage), nullable=False, default=DataUsage.balanced
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
