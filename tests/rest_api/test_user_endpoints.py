"""Users endpoint tests: listing, search and lookup."""

from __future__ import annotations

from tests.factories import assert_error_response, assert_success_response


class TestUsers:
    async def test_list_users(self, authed_client, alice, bob):
        body = assert_success_response(await authed_client.get("/users"))
        assert [u["username"] for u in body["users"]] == ["alice", "bob"]

    async def test_search_excludes_caller(self, authed_client, alice, bob):
        body = assert_success_response(await authed_client.get("/users/search", params={"q": "b"}))
        assert [u["username"] for u in body["users"]] == ["bob"]

        body = assert_success_response(await authed_client.get("/users/search", params={"q": "ali"}))
        assert body["users"] == []

    async def test_search_requires_query(self, authed_client):
        assert_error_response(await authed_client.get("/users/search"), 400)

    async def test_get_user(self, authed_client, bob):
        body = assert_success_response(await authed_client.get(f"/users/{bob['id']}"))
        assert body["user"]["username"] == "bob"

    async def test_get_missing_user(self, authed_client):
        assert_error_response(await authed_client.get("/users/9999"), 404, "User not found")

    async def test_requires_auth(self, anon_client):
        assert_error_response(await anon_client.get("/users"), 401)
