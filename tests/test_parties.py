import asyncio

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import make_friends, signup
from houseparty.models.invitation import Invitation
from houseparty.models.party import PartyParticipant
from houseparty.services import friend_service
from houseparty.services.video_service import VideoTokenIssuer


async def create_party(client: AsyncClient, host: dict, name="Friday Hangout", **extra):
    return await client.post("/parties", json={"name": name, **extra}, headers=host["headers"])


async def join(client: AsyncClient, party_id: int, user: dict):
    return await client.post(f"/parties/{party_id}/join", headers=user["headers"])


async def leave(client: AsyncClient, party_id: int, user: dict):
    return await client.post(f"/parties/{party_id}/leave", headers=user["headers"])


class TestCreateParty:
    async def test_create_party(self, db_client: AsyncClient, alice):
        resp = await create_party(db_client, alice)
        assert resp.status_code == 201
        data = resp.json()
        party = data["party"]
        assert party["name"] == "Friday Hangout"
        assert party["hostId"] == alice["id"]
        assert party["participants"] == [alice["id"]]
        assert party["capacity"] == 10
        assert party["isActive"] is True
        assert party["channelName"].startswith("party_")
        assert data["uid"] == alice["id"]
        assert data["token"] == data["video"]["token"]
        assert data["video"]["channelName"] == party["channelName"]

    async def test_channel_names_are_unique(self, db_client: AsyncClient, alice):
        first = (await create_party(db_client, alice)).json()["party"]["channelName"]
        second = (await create_party(db_client, alice)).json()["party"]["channelName"]
        assert first != second

    async def test_name_required(self, db_client: AsyncClient, alice):
        resp = await create_party(db_client, alice, name="   ")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Party name is required"

    async def test_capacity_bounds(self, db_client: AsyncClient, alice):
        assert (await create_party(db_client, alice, capacity=1)).status_code == 400
        assert (await create_party(db_client, alice, capacity=11)).status_code == 400
        resp = await create_party(db_client, alice, capacity=2)
        assert resp.status_code == 201
        assert resp.json()["party"]["capacity"] == 2

    async def test_unconfigured_video_creates_nothing(self, db_client: AsyncClient, db_session, alice):
        from houseparty.main import app

        app.state.parties.video = VideoTokenIssuer("", "", 3600)
        resp = await create_party(db_client, alice)
        assert resp.status_code == 500
        result = await db_session.execute(select(PartyParticipant))
        assert result.scalars().all() == []


class TestJoinParty:
    async def test_join(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await join(db_client, party_id, bob)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Joined party successfully"
        assert data["party"]["participants"] == [alice["id"], bob["id"]]
        assert data["uid"] == bob["id"]

    async def test_join_is_idempotent(self, db_client: AsyncClient, db_session, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await join(db_client, party_id, bob)
        resp = await join(db_client, party_id, bob)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Already in party"
        assert data["party"]["participants"] == [alice["id"], bob["id"]]
        assert data["token"]
        rows = (await db_session.execute(select(PartyParticipant))).scalars().all()
        assert len(rows) == 2

    async def test_capacity_enforced(self, db_client: AsyncClient, alice, bob, carol):
        party_id = (await create_party(db_client, alice, capacity=2)).json()["party"]["id"]
        assert (await join(db_client, party_id, bob)).status_code == 200
        resp = await join(db_client, party_id, carol)
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Party is full"}

    async def test_join_unknown_party(self, db_client: AsyncClient, bob):
        resp = await join(db_client, 999, bob)
        assert resp.status_code == 404
        assert resp.json()["error"] == "Party not found"

    async def test_participants_are_notified(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "alice-phone"}, headers=alice["headers"])
        await db_client.post("/users/fcm-token", json={"token": "bob-phone"}, headers=bob["headers"])
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await join(db_client, party_id, bob)
        assert [p["token"] for p in services.pushes.sent] == ["alice-phone"]
        assert services.pushes.sent[0]["data"] == {"type": "party_join", "partyId": str(party_id)}

    async def test_concurrent_joins_respect_capacity(self, db_engine, db_client: AsyncClient, mailbox, alice):
        from houseparty.main import app

        party_id = (await create_party(db_client, alice, capacity=3)).json()["party"]["id"]
        guests = [
            await signup(db_client, mailbox, f"guest{i}", f"+1555000010{i}") for i in range(4)
        ]
        registry = app.state.parties
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)

        async def attempt(user_id: int):
            async with session_factory() as db:
                user = await friend_service.resolve_user(db, user_id=user_id)
                try:
                    await registry.join_party(db, party_id, user)
                    return True
                except ValueError:
                    return False

        results = await asyncio.gather(*(attempt(g["id"]) for g in guests))
        assert sum(results) == 2

        resp = await db_client.get(f"/parties/{party_id}", headers=alice["headers"])
        assert len(resp.json()["party"]["participants"]) == 3


class TestLeaveParty:
    async def test_host_transfers_to_earliest_joiner(self, db_client: AsyncClient, alice, bob, carol):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await join(db_client, party_id, bob)
        await join(db_client, party_id, carol)

        resp = await leave(db_client, party_id, alice)
        assert resp.status_code == 200
        party = resp.json()["party"]
        assert party["hostId"] == bob["id"]
        assert party["participants"] == [bob["id"], carol["id"]]
        assert party["isActive"] is True

    async def test_last_leave_ends_party(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await leave(db_client, party_id, alice)
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Party ended"
        assert data["party"]["isActive"] is False
        assert data["party"]["endedAt"] is not None

        resp = await join(db_client, party_id, bob)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Party is no longer active"

    async def test_leave_when_not_participant(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await leave(db_client, party_id, bob)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Not in party"

    async def test_rejoin_after_leave(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await join(db_client, party_id, bob)
        await leave(db_client, party_id, bob)
        resp = await join(db_client, party_id, bob)
        assert resp.json()["message"] == "Joined party successfully"


class TestListParties:
    async def test_friends_parties_are_listed(self, db_client: AsyncClient, alice, bob, carol):
        await make_friends(db_client, alice, bob)
        bobs = (await create_party(db_client, bob, name="Bob's")).json()["party"]["id"]
        await create_party(db_client, carol, name="Carol's")

        resp = await db_client.get("/parties", headers=alice["headers"])
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()["parties"]] == [bobs]

    async def test_ended_parties_are_not_listed(self, db_client: AsyncClient, alice):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await leave(db_client, party_id, alice)
        resp = await db_client.get("/parties", headers=alice["headers"])
        assert resp.json()["parties"] == []

    async def test_get_party(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.get(f"/parties/{party_id}", headers=bob["headers"])
        assert resp.status_code == 200
        assert resp.json()["party"]["participants"] == [alice["id"]]

    async def test_get_unknown_party(self, db_client: AsyncClient, alice):
        resp = await db_client.get("/parties/999", headers=alice["headers"])
        assert resp.status_code == 404


class TestInvitations:
    async def test_invite_existing_user(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "bob-phone"}, headers=bob["headers"])
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.post(
            f"/parties/{party_id}/invite", json={"userId": bob["id"]}, headers=alice["headers"]
        )
        assert resp.status_code == 201
        invitation = resp.json()["invitation"]
        assert invitation["kind"] == "party"
        assert invitation["partyId"] == party_id
        assert invitation["receiverId"] == bob["id"]
        assert services.pushes.sent[-1]["data"]["type"] == "party_invitation"

        resp = await db_client.get("/parties/invitations", headers=bob["headers"])
        assert [i["id"] for i in resp.json()["invitations"]] == [invitation["id"]]

    async def test_invite_by_unregistered_email(self, db_client: AsyncClient, db_session, mailbox, alice):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.post(
            f"/parties/{party_id}/invite", json={"email": "New@example.com"}, headers=alice["headers"]
        )
        assert resp.status_code == 201
        invitation = resp.json()["invitation"]
        assert invitation["receiverId"] is None
        assert invitation["receiverContact"] == "new@example.com"
        mailbox.invitation.assert_awaited_once_with("New@example.com", "alice", "Friday Hangout", party_id)

    async def test_invite_requires_membership(self, db_client: AsyncClient, alice, bob, carol):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.post(
            f"/parties/{party_id}/invite", json={"userId": carol["id"]}, headers=bob["headers"]
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "You must be in the party to invite others"

    async def test_invite_to_ended_party(self, db_client: AsyncClient, alice, bob):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        await leave(db_client, party_id, alice)
        resp = await db_client.post(
            f"/parties/{party_id}/invite", json={"userId": bob["id"]}, headers=alice["headers"]
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Party is no longer active"

    async def test_invite_needs_a_target(self, db_client: AsyncClient, alice):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.post(f"/parties/{party_id}/invite", json={}, headers=alice["headers"])
        assert resp.status_code == 400

    async def test_invite_unknown_user_id(self, db_client: AsyncClient, db_session, alice):
        party_id = (await create_party(db_client, alice)).json()["party"]["id"]
        resp = await db_client.post(
            f"/parties/{party_id}/invite", json={"userId": 999}, headers=alice["headers"]
        )
        assert resp.status_code == 404
        assert (await db_session.execute(select(Invitation))).scalars().all() == []
