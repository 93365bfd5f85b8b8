"""API tests for user group administration."""

from __future__ import annotations


class TestGroupAccess:
    async def test_editor_forbidden(self, client, api_user):
        _, editor = await api_user(role="Editor")
        assert (await client.get("/groups", headers=editor)).status_code == 403
        resp = await client.post("/groups", json={"name": "Ops"}, headers=editor)
        assert resp.status_code == 403

    async def test_requires_session(self, client):
        assert (await client.get("/groups")).status_code == 401


class TestCreateGroup:
    async def test_create_with_members(self, client, api_user):
        admin, headers = await api_user(role="Admin")
        member, _ = await api_user()
        resp = await client.post(
            "/groups",
            json={"name": "  Operators ", "description": "  ", "user_ids": [member.id]},
            headers=headers,
        )
        assert resp.status_code == 201
        group = resp.json()
        assert group["name"] == "Operators"
        assert group["description"] is None
        assert group["created_by_user_id"] == admin.id
        assert [m["user_id"] for m in group["members"]] == [member.id]
        assert group["members"][0]["user"]["role"] == "Viewer"

    async def test_duplicate_name_is_conflict(self, client, api_user):
        _, headers = await api_user(role="Admin")
        first = await client.post("/groups", json={"name": "Ops"}, headers=headers)
        assert first.status_code == 201
        resp = await client.post("/groups", json={"name": "Ops"}, headers=headers)
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    async def test_everyone_name_reserved(self, client, api_user):
        _, headers = await api_user(role="Admin")
        resp = await client.post("/groups", json={"name": " everyone "}, headers=headers)
        assert resp.status_code == 400
        assert (await client.get("/groups", headers=headers)).json() == []

    async def test_unknown_user_rejected(self, client, api_user):
        _, headers = await api_user(role="Admin")
        resp = await client.post(
            "/groups", json={"name": "Ops", "user_ids": ["ghost"]}, headers=headers
        )
        assert resp.status_code == 400
        assert (await client.get("/groups", headers=headers)).json() == []


class TestUpdateGroup:
    async def test_rename_and_describe(self, client, api_user):
        _, headers = await api_user(role="Admin")
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()
        resp = await client.patch(
            f"/groups/{group['id']}",
            json={"name": "Operations", "description": " Shift crew "},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Operations"
        assert resp.json()["description"] == "Shift crew"

    async def test_rename_to_everyone_rejected(self, client, api_user):
        _, headers = await api_user(role="Admin")
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()
        resp = await client.patch(
            f"/groups/{group['id']}", json={"name": "EVERYONE"}, headers=headers
        )
        assert resp.status_code == 400

    async def test_rename_to_taken_name_is_conflict(self, client, api_user):
        _, headers = await api_user(role="Admin")
        await client.post("/groups", json={"name": "Ops"}, headers=headers)
        other = (await client.post("/groups", json={"name": "QA"}, headers=headers)).json()
        resp = await client.patch(f"/groups/{other['id']}", json={"name": "Ops"}, headers=headers)
        assert resp.status_code == 409

    async def test_empty_update_rejected(self, client, api_user):
        _, headers = await api_user(role="Admin")
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()
        resp = await client.patch(f"/groups/{group['id']}", json={}, headers=headers)
        assert resp.status_code == 400

    async def test_missing_group_is_404(self, client, api_user):
        _, headers = await api_user(role="Admin")
        resp = await client.patch("/groups/missing", json={"name": "X"}, headers=headers)
        assert resp.status_code == 404


class TestGroupMembers:
    async def test_add_and_remove(self, client, api_user):
        _, headers = await api_user(role="Admin")
        user, _ = await api_user()
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()

        added = await client.post(
            f"/groups/{group['id']}/members", json={"user_id": user.id}, headers=headers
        )
        assert added.status_code == 200
        assert [m["user_id"] for m in added.json()["members"]] == [user.id]

        again = await client.post(
            f"/groups/{group['id']}/members", json={"user_id": user.id}, headers=headers
        )
        assert again.status_code == 409

        removed = await client.delete(f"/groups/{group['id']}/members/{user.id}", headers=headers)
        assert removed.status_code == 200
        assert removed.json()["members"] == []

        missing = await client.delete(f"/groups/{group['id']}/members/{user.id}", headers=headers)
        assert missing.status_code == 404

    async def test_unknown_user_is_404(self, client, api_user):
        _, headers = await api_user(role="Admin")
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()
        resp = await client.post(
            f"/groups/{group['id']}/members", json={"user_id": "ghost"}, headers=headers
        )
        assert resp.status_code == 404

    async def test_delete_group(self, client, api_user):
        _, headers = await api_user(role="Admin")
        group = (await client.post("/groups", json={"name": "Ops"}, headers=headers)).json()
        resp = await client.delete(f"/groups/{group['id']}", headers=headers)
        assert resp.json() == {"success": True, "deleted_group_id": group["id"]}
        assert (await client.get(f"/groups/{group['id']}", headers=headers)).status_code == 404
