"""Tests for matching and trade API endpoints."""

from httpx import AsyncClient


async def seed(client: AsyncClient) -> dict[str, int]:
    """Alice and Bob each hold one album of a 20-sticker edition.

    Alice has a spare 5, Bob has a spare 7.
    """
    template = await client.post("/templates", json={"name": "Copa 2026", "total_stickers": 20})
    template_id = template.json()["id"]
    albums: dict[str, int] = {}
    for user in ("alice", "bob", "carol"):
        await client.post("/users", json={"id": user, "username": user})
        created = await client.post(f"/users/{user}/albums", json={"template_id": template_id})
        albums[user] = created.json()["id"]
    await client.put(f"/users/alice/albums/{albums['alice']}/stickers/5", json={"count": 2})
    await client.put(f"/users/bob/albums/{albums['bob']}/stickers/7", json={"count": 2})
    return albums


async def counts(client: AsyncClient, album_id: int) -> dict[str, int]:
    view = await client.get(f"/albums/{album_id}", params={"viewer_id": "carol"})
    return view.json()["counts"]


class TestMatches:
    async def test_match_endpoint(self, client: AsyncClient) -> None:
        albums = await seed(client)

        response = await client.get(f"/users/alice/matches/{albums['bob']}")

        assert response.status_code == 200
        assert response.json() == {
            "their_album_id": albums["bob"],
            "can_give": [5],
            "can_receive": [7],
            "is_perfect_match": True,
        }

    async def test_partners(self, client: AsyncClient) -> None:
        albums = await seed(client)

        response = await client.get(f"/users/alice/albums/{albums['alice']}/partners")

        partners = response.json()["partners"]
        assert [p["user_id"] for p in partners] == ["bob", "carol"]
        assert partners[0]["username"] == "bob"
        assert partners[0]["is_perfect_match"] is True


class TestTradeFlow:
    async def test_propose_and_accept(self, client: AsyncClient) -> None:
        """Proposal defaults to the full match; accept moves both stickers."""
        albums = await seed(client)

        proposed = await client.post(
            "/users/alice/trades",
            json={"sender_album_id": albums["alice"], "their_album_id": albums["bob"]},
        )
        assert proposed.status_code == 201
        trade = proposed.json()
        assert (trade["offer"], trade["request"], trade["status"]) == ([5], [7], "pending")
        assert trade["receiver_id"] == "bob"

        received = await client.get("/users/bob/trades", params={"direction": "received"})
        assert [t["id"] for t in received.json()["trades"]] == [trade["id"]]

        accepted = await client.post(
            f"/users/bob/trades/{trade['id']}/accept",
            json={"receiver_album_id": albums["bob"]},
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert await counts(client, albums["alice"]) == {"5": 1, "7": 1}
        assert await counts(client, albums["bob"]) == {"5": 1, "7": 1}

    async def test_explicit_lists(self, client: AsyncClient) -> None:
        albums = await seed(client)

        response = await client.post(
            "/users/alice/trades",
            json={
                "sender_album_id": albums["alice"],
                "receiver_id": "carol",
                "offer": [5],
                "request": [],
            },
        )

        assert response.status_code == 201
        assert response.json()["receiver_id"] == "carol"

    async def test_counterpart_required(self, client: AsyncClient) -> None:
        albums = await seed(client)
        response = await client.post(
            "/users/alice/trades", json={"sender_album_id": albums["alice"], "offer": [5]}
        )
        assert response.status_code == 422

    async def test_explicit_receiver_needs_lists(self, client: AsyncClient) -> None:
        albums = await seed(client)
        response = await client.post(
            "/users/alice/trades",
            json={"sender_album_id": albums["alice"], "receiver_id": "bob"},
        )
        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_locked_sticker_conflict(self, client: AsyncClient) -> None:
        albums = await seed(client)
        body = {"sender_album_id": albums["alice"], "receiver_id": "carol", "offer": [5]}
        assert (await client.post("/users/alice/trades", json=body)).status_code == 201

        response = await client.post(
            "/users/alice/trades",
            json={"sender_album_id": albums["alice"], "receiver_id": "bob", "offer": [5]},
        )

        assert response.status_code == 409
        assert response.json()["outcome"] == "refusal"
        assert response.json()["failure"]["kind"] == "sticker_locked"

    async def test_trade_cap_refusal(self, client: AsyncClient) -> None:
        """A free account's fourth pending trade is refused with an upgrade hint."""
        albums = await seed(client)
        for number in (1, 2, 3):
            body = {"sender_album_id": albums["alice"], "receiver_id": "bob", "request": [number]}
            assert (await client.post("/users/alice/trades", json=body)).status_code == 201

        response = await client.post(
            "/users/alice/trades",
            json={"sender_album_id": albums["alice"], "receiver_id": "bob", "request": [4]},
        )

        assert response.status_code == 403
        failure = response.json()["failure"]
        assert failure["kind"] == "trade_limit_exceeded"
        assert "Premium" in failure["suggestion"]
        sent = await client.get("/users/alice/trades", params={"direction": "sent"})
        assert sent.json()["count"] == 3

    async def test_cancel_then_accept_conflicts(self, client: AsyncClient) -> None:
        albums = await seed(client)
        trade = (
            await client.post(
                "/users/alice/trades",
                json={"sender_album_id": albums["alice"], "their_album_id": albums["bob"]},
            )
        ).json()

        cancelled = await client.post(f"/users/alice/trades/{trade['id']}/cancel")
        assert cancelled.json()["status"] == "cancelled"

        response = await client.post(
            f"/users/bob/trades/{trade['id']}/accept",
            json={"receiver_album_id": albums["bob"]},
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "already_processed"
        assert "cancelled" in response.json()["failure"]["detail"]
        assert await counts(client, albums["alice"]) == {"5": 2}

    async def test_reject(self, client: AsyncClient) -> None:
        albums = await seed(client)
        trade = (
            await client.post(
                "/users/alice/trades",
                json={"sender_album_id": albums["alice"], "their_album_id": albums["bob"]},
            )
        ).json()

        response = await client.post(f"/users/bob/trades/{trade['id']}/reject")

        assert response.json()["status"] == "rejected"
        listed = await client.get(
            "/users/alice/trades", params={"direction": "sent", "status": "pending"}
        )
        assert listed.json()["count"] == 0

    async def test_outsider_cannot_read(self, client: AsyncClient) -> None:
        albums = await seed(client)
        trade = (
            await client.post(
                "/users/alice/trades",
                json={"sender_album_id": albums["alice"], "their_album_id": albums["bob"]},
            )
        ).json()

        assert (await client.get(f"/users/bob/trades/{trade['id']}")).status_code == 200
        assert (await client.get(f"/users/carol/trades/{trade['id']}")).status_code == 403
