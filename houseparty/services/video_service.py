import logging
import time
from dataclasses import dataclass

from agora_token_builder import RtcTokenBuilder

from houseparty.config import Settings
from houseparty.errors import VideoServiceUnavailable

logger = logging.getLogger(__name__)

# Agora RTC role constant for a publisher (Role_Publisher).
ROLE_PUBLISHER = 1


@dataclass(frozen=True)
class VideoCredential:
    token: str
    uid: int
    channel_name: str
    expires_at: int
    expires_in: int


class VideoTokenIssuer:
    """Issues time-boxed Agora RTC tokens scoped to one channel and uid."""

    def __init__(self, app_id: str, app_certificate: str, ttl_seconds: int):
        self.app_id = app_id
        self.app_certificate = app_certificate
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "VideoTokenIssuer":
        return cls(settings.agora_app_id, settings.agora_app_certificate, settings.agora_token_expire_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.app_certificate)

    @staticmethod
    def uid_for(user_id: int) -> int:
        return user_id

    def issue(self, channel_name: str, uid: int, now: int | None = None) -> VideoCredential:
        if not self.is_configured:
            logger.error("Agora app ID or certificate not configured")
            raise VideoServiceUnavailable()

        issued_at = int(time.time()) if now is None else now
        expires_at = issued_at + self.ttl_seconds
        token = RtcTokenBuilder.buildTokenWithUid(
            self.app_id, self.app_certificate, channel_name, uid, ROLE_PUBLISHER, expires_at
        )
        logger.info("Issued video token: channel=%s, uid=%s", channel_name, uid)
        return VideoCredential(
            token=token,
            uid=uid,
            channel_name=channel_name,
            expires_at=expires_at,
            expires_in=self.ttl_seconds,
        )
