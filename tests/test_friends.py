import asyncio
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import make_friends
from houseparty.models.base import utcnow
from houseparty.models.friendship import Friendship
from houseparty.models.invitation import Invitation, InvitationStatus
from houseparty.services import friend_service


async def send_request(client: AsyncClient, sender: dict, **target):
    return await client.post("/friends/request", json=target, headers=sender["headers"])


class TestFriendRequests:
    async def test_send_request(self, db_client: AsyncClient, services, alice, bob):
        resp = await send_request(db_client, alice, userId=bob["id"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Friend request sent"
        invitation = data["invitation"]
        assert invitation["senderId"] == alice["id"]
        assert invitation["receiverId"] == bob["id"]
        assert invitation["kind"] == "friend"
        assert invitation["status"] == "pending"

    async def test_request_by_email_and_phone(self, db_client: AsyncClient, alice, bob, carol):
        assert (await send_request(db_client, alice, email="BOB@example.com")).status_code == 200
        assert (await send_request(db_client, alice, phone="+15550000003")).status_code == 200

    async def test_request_needs_a_target(self, db_client: AsyncClient, alice):
        resp = await send_request(db_client, alice)
        assert resp.status_code == 400
        assert resp.json()["error"] == "User ID, email, or phone is required"

    async def test_request_unknown_user(self, db_client: AsyncClient, alice):
        resp = await send_request(db_client, alice, userId=999)
        assert resp.status_code == 404

    async def test_request_to_self(self, db_client: AsyncClient, alice):
        resp = await send_request(db_client, alice, userId=alice["id"])
        assert resp.status_code == 400

    async def test_duplicate_pending_request(self, db_client: AsyncClient, alice, bob):
        await send_request(db_client, alice, userId=bob["id"])
        resp = await send_request(db_client, alice, userId=bob["id"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "Friend request already sent"

    async def test_request_to_existing_friend(self, db_client: AsyncClient, alice, bob):
        await make_friends(db_client, alice, bob)
        resp = await send_request(db_client, bob, userId=alice["id"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "Already friends with this user"

    async def test_receiver_is_notified(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "bob-phone"}, headers=bob["headers"])
        await send_request(db_client, alice, userId=bob["id"])
        assert len(services.pushes.sent) == 1
        push = services.pushes.sent[0]
        assert push["token"] == "bob-phone"
        assert push["data"]["type"] == "friend_request"
        assert "alice" in push["body"]

    async def test_no_push_when_notifications_disabled(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "bob-phone"}, headers=bob["headers"])
        await db_client.put("/users/settings", json={"notifications": False}, headers=bob["headers"])
        resp = await send_request(db_client, alice, userId=bob["id"])
        assert resp.status_code == 200
        assert services.pushes.sent == []

    async def test_list_pending_requests(self, db_client: AsyncClient, alice, bob):
        await send_request(db_client, alice, userId=bob["id"])
        resp = await db_client.get("/friends/requests", headers=bob["headers"])
        assert resp.status_code == 200
        requests = resp.json()["requests"]
        assert len(requests) == 1
        assert requests[0]["sender"]["username"] == "alice"

        resp = await db_client.get("/friends/requests", headers=alice["headers"])
        assert resp.json()["requests"] == []


class TestRespond:
    async def test_accept_creates_mutual_friendship(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "alice-phone"}, headers=alice["headers"])
        await make_friends(db_client, alice, bob)

        alice_friends = (await db_client.get("/friends", headers=alice["headers"])).json()["friends"]
        bob_friends = (await db_client.get("/friends", headers=bob["headers"])).json()["friends"]
        assert [f["id"] for f in alice_friends] == [bob["id"]]
        assert [f["id"] for f in bob_friends] == [alice["id"]]
        assert services.pushes.sent[-1]["data"]["type"] == "friend_request_accepted"

    async def test_decline(self, db_client: AsyncClient, alice, bob):
        invitation = (await send_request(db_client, alice, userId=bob["id"])).json()["invitation"]
        resp = await db_client.post(
            "/friends/respond", json={"invitationId": invitation["id"], "accept": False}, headers=bob["headers"]
        )
        assert resp.status_code == 200
        assert resp.json()["message"] == "Friend request declined"
        assert (await db_client.get("/friends", headers=alice["headers"])).json()["friends"] == []

    async def test_only_receiver_may_respond(self, db_client: AsyncClient, alice, bob, carol):
        invitation = (await send_request(db_client, alice, userId=bob["id"])).json()["invitation"]
        resp = await db_client.post(
            "/friends/respond", json={"invitationId": invitation["id"], "accept": True}, headers=carol["headers"]
        )
        assert resp.status_code == 403

    async def test_cannot_respond_twice(self, db_client: AsyncClient, alice, bob):
        invitation = (await send_request(db_client, alice, userId=bob["id"])).json()["invitation"]
        body = {"invitationId": invitation["id"], "accept": True}
        assert (await db_client.post("/friends/respond", json=body, headers=bob["headers"])).status_code == 200
        resp = await db_client.post("/friends/respond", json=body, headers=bob["headers"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invitation already responded to"

    async def test_expired_request_cannot_be_accepted(self, db_client: AsyncClient, db_session, alice, bob):
        invitation = (await send_request(db_client, alice, userId=bob["id"])).json()["invitation"]
        await db_session.execute(
            update(Invitation).values(expires_at=utcnow() - timedelta(minutes=1))
        )
        await db_session.commit()
        resp = await db_client.post(
            "/friends/respond", json={"invitationId": invitation["id"], "accept": True}, headers=bob["headers"]
        )
        assert resp.status_code == 400

    async def test_unknown_invitation(self, db_client: AsyncClient, bob):
        resp = await db_client.post(
            "/friends/respond", json={"invitationId": 12345, "accept": True}, headers=bob["headers"]
        )
        assert resp.status_code == 404


class TestMutualRequests:
    async def test_reverse_request_collapses_into_friendship(self, db_client: AsyncClient, alice, bob):
        await send_request(db_client, alice, userId=bob["id"])
        resp = await send_request(db_client, bob, userId=alice["id"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Friend request accepted"
        assert data["invitation"]["status"] == "accepted"
        friends = (await db_client.get("/friends", headers=alice["headers"])).json()["friends"]
        assert [f["id"] for f in friends] == [bob["id"]]

    async def test_first_requester_hears_of_acceptance(self, db_client: AsyncClient, services, alice, bob):
        await db_client.post("/users/fcm-token", json={"token": "alice-phone"}, headers=alice["headers"])
        await send_request(db_client, alice, userId=bob["id"])
        await send_request(db_client, bob, userId=alice["id"])

        assert len(services.pushes.sent) == 1
        push = services.pushes.sent[0]
        assert push["token"] == "alice-phone"
        assert push["data"] == {"type": "friend_request_accepted", "userId": str(bob["id"])}
        assert "bob" in push["body"]

    async def test_simultaneous_requests_yield_one_friendship(
        self, db_engine, db_session, services, alice, bob
    ):
        from houseparty.main import app

        graph = app.state.friends
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)

        async def request(sender_id: int, receiver_id: int):
            async with session_factory() as db:
                sender = await friend_service.resolve_user(db, user_id=sender_id)
                receiver = await friend_service.resolve_user(db, user_id=receiver_id)
                return await graph.send_friend_request(db, sender, receiver)

        results = await asyncio.gather(request(alice["id"], bob["id"]), request(bob["id"], alice["id"]))
        assert sorted(r.accepted for r in results) == [False, True]

        rows = (await db_session.execute(select(Friendship))).scalars().all()
        assert sorted((f.user_id, f.friend_id) for f in rows) == sorted(
            [(alice["id"], bob["id"]), (bob["id"], alice["id"])]
        )
        invitations = (await db_session.execute(select(Invitation))).scalars().all()
        assert [i.status for i in invitations] == [InvitationStatus.accepted]


class TestFriendList:
    async def test_remove_friend_both_directions(self, db_client: AsyncClient, alice, bob):
        await make_friends(db_client, alice, bob)
        resp = await db_client.delete(f"/friends/{bob['id']}", headers=alice["headers"])
        assert resp.status_code == 200
        assert (await db_client.get("/friends", headers=alice["headers"])).json()["friends"] == []
        assert (await db_client.get("/friends", headers=bob["headers"])).json()["friends"] == []

    async def test_search_excludes_self_and_friends(self, db_client: AsyncClient, alice, bob, carol):
        await make_friends(db_client, alice, bob)
        resp = await db_client.get("/friends/search", params={"query": "example.com"}, headers=alice["headers"])
        assert resp.status_code == 200
        assert [u["username"] for u in resp.json()["users"]] == ["carol"]

    async def test_search_is_case_insensitive(self, db_client: AsyncClient, alice, bob):
        resp = await db_client.get("/friends/search", params={"query": "BO"}, headers=alice["headers"])
        assert [u["username"] for u in resp.json()["users"]] == ["bob"]

    async def test_search_treats_wildcards_literally(self, db_client: AsyncClient, alice, bob):
        resp = await db_client.get("/friends/search", params={"query": "%"}, headers=alice["headers"])
        assert resp.json()["users"] == []

    async def test_search_requires_query(self, db_client: AsyncClient, alice):
        resp = await db_client.get("/friends/search", headers=alice["headers"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "Search query is required"

    async def test_match_contacts(self, db_client: AsyncClient, alice, bob, carol):
        await make_friends(db_client, alice, bob)
        resp = await db_client.post(
            "/friends/match-contacts",
            json={"phones": ["+15550000002", "+19999999999"], "emails": ["CAROL@example.com"]},
            headers=alice["headers"],
        )
        assert resp.status_code == 200
        matches = {m["username"]: m["isFriend"] for m in resp.json()["matches"]}
        assert matches == {"bob": True, "carol": False}
