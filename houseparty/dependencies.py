from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.models.user import User
from houseparty.realtime.presence import PresenceCoordinator
from houseparty.services.auth_service import get_user_by_id
from houseparty.services.friend_service import FriendGraph
from houseparty.services.party_service import PartyRegistry
from houseparty.services.token_service import TokenKind, TokenService
from houseparty.services.video_service import VideoTokenIssuer

bearer_scheme = HTTPBearer(auto_error=False)

NOT_AUTHORIZED = "Not authorized to access this route"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""
    user: User

    @property
    def user_id(self) -> int:
        return self.user.id


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_video_issuer(request: Request) -> VideoTokenIssuer:
    return request.app.state.video


def get_presence(request: Request) -> PresenceCoordinator:
    return request.app.state.presence


def get_friend_graph(request: Request) -> FriendGraph:
    return request.app.state.friends


def get_party_registry(request: Request) -> PartyRegistry:
    return request.app.state.parties


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> Principal:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_AUTHORIZED)
    user_id = tokens.verify(credentials.credentials, TokenKind.access)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_AUTHORIZED)
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return Principal(user=user)
