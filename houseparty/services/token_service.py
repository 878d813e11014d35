import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from houseparty.config import Settings

logger = logging.getLogger(__name__)


class TokenKind(str, enum.Enum):
    access = "access"
    refresh = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """Signs and verifies access and refresh JWTs.

    Each kind has its own secret and lifetime, so a refresh token never
    verifies as an access token and vice versa.
    """

    def __init__(self, settings: Settings):
        self._algorithm = settings.algorithm
        self._secrets = {
            TokenKind.access: settings.access_token_secret,
            TokenKind.refresh: settings.refresh_token_secret,
        }
        self._lifetimes = {
            TokenKind.access: timedelta(minutes=settings.access_token_expire_minutes),
            TokenKind.refresh: timedelta(days=settings.refresh_token_expire_days),
        }

    def _issue(self, user_id: int, kind: TokenKind) -> str:
        expire = datetime.now(timezone.utc) + self._lifetimes[kind]
        payload = {"sub": str(user_id), "type": kind.value, "exp": expire}
        return jwt.encode(payload, self._secrets[kind], algorithm=self._algorithm)

    def issue_access_token(self, user_id: int) -> str:
        return self._issue(user_id, TokenKind.access)

    def issue_refresh_token(self, user_id: int) -> str:
        return self._issue(user_id, TokenKind.refresh)

    def issue_token_pair(self, user_id: int) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id),
        )

    def verify(self, token: str, kind: TokenKind) -> int | None:
        """Return the user id carried by a valid token of ``kind``, else None."""
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[self._algorithm])
        except ExpiredSignatureError:
            logger.debug("Rejected %s token: expired", kind.value)
            return None
        except JWTError as exc:
            logger.debug("Rejected %s token: %s", kind.value, exc)
            return None

        if payload.get("type") != kind.value:
            logger.debug("Rejected %s token: wrong type %r", kind.value, payload.get("type"))
            return None
        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            return int(user_id)
        except (TypeError, ValueError):
            return None
