import os
import tempfile
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from houseparty.config import Settings
from houseparty.database import get_db
from houseparty.main import app
from houseparty.models.base import Base
from houseparty.realtime.presence import PresenceCoordinator
from houseparty.services.friend_service import FriendGraph
from houseparty.services.notification_service import Notifier
from houseparty.services.party_service import PartyRegistry
from houseparty.services.push_service import PushDispatcher
from houseparty.services.token_service import TokenService
from houseparty.services.video_service import VideoTokenIssuer

TEST_AGORA_APP_ID = "0123456789abcdef0123456789abcdef"
TEST_AGORA_CERTIFICATE = "fedcba9876543210fedcba9876543210"


class FakePushSender:
    """Records pushes instead of calling FCM; tokens in ``failing`` raise."""

    def __init__(self, failing: set[str] | None = None):
        self.sent: list[dict] = []
        self.failing = failing or set()

    def __call__(self, token: str, title: str, body: str, data: dict[str, str]) -> str:
        if token in self.failing:
            raise RuntimeError(f"unregistered token {token}")
        self.sent.append({"token": token, "title": title, "body": body, "data": data})
        return f"msg-{len(self.sent)}"


def make_settings(**overrides) -> Settings:
    values = {"push_batch_delay_seconds": 0, "environment": "test"}
    values.update(overrides)
    return Settings(**values)


def install_services(target, session_factory, push_sender: FakePushSender):
    """Fresh process-wide services on ``app.state`` for one test."""
    settings = make_settings()
    video = VideoTokenIssuer(TEST_AGORA_APP_ID, TEST_AGORA_CERTIFICATE, 3600)
    presence = PresenceCoordinator()
    notifier = Notifier(PushDispatcher(settings, sender=push_sender))

    target.state.session_factory = session_factory
    target.state.tokens = TokenService(settings)
    target.state.video = video
    target.state.presence = presence
    target.state.notifier = notifier
    target.state.friends = FriendGraph(notifier)
    target.state.parties = PartyRegistry(video, notifier, presence)
    return SimpleNamespace(
        tokens=target.state.tokens, video=video, presence=presence, pushes=push_sender
    )


@pytest.fixture
async def db_engine():
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)
    test_db_url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(test_db_url, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
async def db_session(db_engine) -> AsyncSession:
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def mailbox():
    """Captures outgoing emails; ``codes`` holds every OTP mailed, newest last."""
    box = SimpleNamespace(
        otp=AsyncMock(return_value=True),
        phone=AsyncMock(return_value=True),
        reset=AsyncMock(return_value=True),
        invitation=AsyncMock(return_value=True),
    )
    with (
        patch("houseparty.services.auth_service.send_otp_email", box.otp),
        patch("houseparty.services.auth_service.send_phone_otp_email", box.phone),
        patch("houseparty.services.auth_service.send_password_reset_email", box.reset),
        patch("houseparty.services.party_service.send_invitation_email", box.invitation),
    ):
        yield box


@pytest.fixture
def services(db_engine):
    return install_services(
        app, async_sessionmaker(db_engine, expire_on_commit=False), FakePushSender()
    )


@pytest.fixture
async def client() -> AsyncClient:
    """HTTP client that does NOT override the DB (for endpoints that don't need DB)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_client(db_session: AsyncSession, services, mailbox) -> AsyncClient:
    """HTTP client with DB dependency overridden to use the test SQLite DB."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Flow helpers ───────────────────────────


def last_code(mock: AsyncMock) -> str:
    """The OTP passed to the most recent call of a patched email helper."""
    return mock.call_args.args[1]


async def register_user(
    client: AsyncClient,
    email="alice@example.com",
    username="alice",
    phone="+15550000001",
    password="secret123",
):
    return await client.post(
        "/auth/register",
        json={"email": email, "username": username, "phone": phone, "password": password},
    )


async def signup(client: AsyncClient, mailbox, username: str, phone: str) -> dict:
    """Register and verify a user; returns their id, tokens and auth headers."""
    email = f"{username}@example.com"
    resp = await register_user(client, email=email, username=username, phone=phone)
    assert resp.status_code == 201, resp.text
    resp = await client.post(
        "/auth/verify-email", json={"email": email, "otp": last_code(mailbox.otp)}
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    return {
        "id": data["user"]["id"],
        "email": email,
        "access_token": data["accessToken"],
        "refresh_token": data["refreshToken"],
        "headers": {"Authorization": f"Bearer {data['accessToken']}"},
    }


@pytest.fixture
async def alice(db_client, mailbox):
    return await signup(db_client, mailbox, "alice", "+15550000001")


@pytest.fixture
async def bob(db_client, mailbox):
    return await signup(db_client, mailbox, "bob", "+15550000002")


@pytest.fixture
async def carol(db_client, mailbox):
    return await signup(db_client, mailbox, "carol", "+15550000003")


async def make_friends(client: AsyncClient, a: dict, b: dict) -> None:
    resp = await client.post("/friends/request", json={"userId": b["id"]}, headers=a["headers"])
    assert resp.status_code == 200, resp.text
    invitation_id = resp.json()["invitation"]["id"]
    resp = await client.post(
        "/friends/respond", json={"invitationId": invitation_id, "accept": True}, headers=b["headers"]
    )
    assert resp.status_code == 200, resp.text
