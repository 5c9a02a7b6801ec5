"""
Comment endpoint tests.
Covers: submit, read, thread view, listings, edit, moderation, reparent,
delete, import, site stats, error bodies.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

pytestmark = pytest.mark.asyncio

NIL = "00000000-0000-0000-0000-000000000000"


async def _create_comment(client: AsyncClient, scope, **overrides: Any) -> dict:
    response = await client.post("/api/v1/comments", json=scope.json(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


class TestSubmitComment:
    async def test_submit_success(self, client: AsyncClient, scope) -> None:
        response = await client.post(
            "/api/v1/comments",
            json=scope.json(title="Hello", author_name="Ada", author_email="ada@example.com"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Hello"
        assert data["content_id"] == str(scope.content_id)
        assert data["parent_id"] is None
        assert data["user_id"] == NIL
        assert data["moderation_status"] == 1
        assert data["created_at"] == data["last_modified_at"]
        assert "id" in data

    async def test_submit_records_client_address(self, client: AsyncClient, scope) -> None:
        data = await _create_comment(client, scope)
        assert data["author_ip"] == "127.0.0.1"

    async def test_timestamps_carry_utc_offset(self, client: AsyncClient, scope) -> None:
        data = await _create_comment(client, scope)
        for field in ("created_at", "last_modified_at"):
            assert datetime.fromisoformat(data[field]).utcoffset() == timedelta(0), field

        response = await client.get(f"/api/v1/comments/{data['id']}")
        assert datetime.fromisoformat(response.json()["created_at"]).utcoffset() == timedelta(0)

    async def test_submit_keeps_explicit_address(self, client: AsyncClient, scope) -> None:
        data = await _create_comment(client, scope, author_ip="198.51.100.4")
        assert data["author_ip"] == "198.51.100.4"

    async def test_submit_overlong_title(self, client: AsyncClient, scope) -> None:
        response = await client.post("/api/v1/comments", json=scope.json(title="t" * 256))
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert any("title" in error["field"] for error in body["errors"])

    async def test_submit_empty_content_id(self, client: AsyncClient, scope) -> None:
        response = await client.post("/api/v1/comments", json=scope.json(content_id=NIL))
        assert response.status_code == 422

    async def test_submit_reply_to_missing_parent(self, client: AsyncClient, scope) -> None:
        response = await client.post(
            "/api/v1/comments", json=scope.json(parent_id=str(uuid.uuid4()))
        )
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    async def test_submit_duplicate_id(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope)
        response = await client.post("/api/v1/comments", json=scope.json(id=comment["id"]))
        assert response.status_code == 409


class TestReadComment:
    async def test_get_comment(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope, body="Readable")
        response = await client.get(f"/api/v1/comments/{comment['id']}")
        assert response.status_code == 200
        assert response.json() == comment

    async def test_get_missing_comment(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/v1/comments/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_get_malformed_id(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/comments/not-a-uuid")
        assert response.status_code == 422

    async def test_thread_view(self, client: AsyncClient, scope) -> None:
        root = await _create_comment(client, scope)
        reply = await _create_comment(client, scope, parent_id=root["id"])
        nested = await _create_comment(client, scope, parent_id=reply["id"])

        response = await client.get(f"/api/v1/comments/{reply['id']}/thread")
        assert response.status_code == 200
        data = response.json()
        assert data["parent"]["id"] == root["id"]
        assert data["comment"]["id"] == reply["id"]
        assert [c["id"] for c in data["children"]] == [nested["id"]]

    async def test_children_filtered_by_status(self, client: AsyncClient, scope) -> None:
        root = await _create_comment(client, scope)
        await _create_comment(client, scope, parent_id=root["id"])
        held = await _create_comment(
            client, scope, parent_id=root["id"], moderation_status=0
        )

        response = await client.get(
            f"/api/v1/comments/{root['id']}/children", params={"status": 0}
        )
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [held["id"]]

        response = await client.get(f"/api/v1/comments/{root['id']}/children")
        assert len(response.json()) == 2


class TestContentListings:
    async def test_list_paginated_oldest_first(self, client: AsyncClient, scope) -> None:
        created = [await _create_comment(client, scope) for _ in range(3)]
        response = await client.get(
            f"/api/v1/contents/{scope.content_id}/comments",
            params={"page": 1, "size": 2},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert [c["id"] for c in data["items"]] == [created[0]["id"], created[1]["id"]]

    async def test_list_filtered_by_status(self, client: AsyncClient, scope) -> None:
        approved = await _create_comment(client, scope)
        await _create_comment(client, scope, moderation_status=2)
        response = await client.get(
            f"/api/v1/contents/{scope.content_id}/comments", params={"status": 1}
        )
        assert [c["id"] for c in response.json()["items"]] == [approved["id"]]

    async def test_list_rejects_unknown_status(self, client: AsyncClient, scope) -> None:
        response = await client.get(
            f"/api/v1/contents/{scope.content_id}/comments", params={"status": 9}
        )
        assert response.status_code == 422

    async def test_top_level_only(self, client: AsyncClient, scope) -> None:
        root = await _create_comment(client, scope)
        await _create_comment(client, scope, parent_id=root["id"])
        response = await client.get(f"/api/v1/contents/{scope.content_id}/comments/top-level")
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [root["id"]]


class TestEditComment:
    async def test_patch_body(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope, title="Kept")
        response = await client.patch(
            f"/api/v1/comments/{comment['id']}", json={"body": "Edited"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["body"] == "Edited"
        assert data["title"] == "Kept"
        assert data["created_at"] == comment["created_at"]
        assert data["last_modified_at"] > comment["last_modified_at"]

    async def test_patch_moderation_field_rejected(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope)
        response = await client.patch(
            f"/api/v1/comments/{comment['id']}", json={"moderation_status": 2}
        )
        assert response.status_code == 422

    async def test_patch_missing_comment(self, client: AsyncClient) -> None:
        response = await client.patch(f"/api/v1/comments/{uuid.uuid4()}", json={"body": "x"})
        assert response.status_code == 404


class TestModeration:
    async def test_mark_as_spam(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope)
        moderator = str(uuid.uuid4())
        response = await client.post(
            f"/api/v1/comments/{comment['id']}/moderation",
            json={"status": 2, "moderator_id": moderator, "reason": "spam"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["moderation_status"] == 2
        assert data["moderated_by"] == moderator
        assert data["moderation_reason"] == "spam"

    async def test_invalid_status(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope)
        response = await client.post(
            f"/api/v1/comments/{comment['id']}/moderation",
            json={"status": 5, "moderator_id": str(uuid.uuid4())},
        )
        assert response.status_code == 422

    async def test_moderator_required(self, client: AsyncClient, scope) -> None:
        comment = await _create_comment(client, scope)
        response = await client.post(
            f"/api/v1/comments/{comment['id']}/moderation", json={"status": 3}
        )
        assert response.status_code == 422


class TestReparentAndDelete:
    async def test_delete_parent_blocked_until_reply_removed(
        self, client: AsyncClient, scope
    ) -> None:
        parent = await _create_comment(client, scope)
        reply = await _create_comment(client, scope, parent_id=parent["id"])

        response = await client.delete(f"/api/v1/comments/{parent['id']}")
        assert response.status_code == 409

        response = await client.delete(f"/api/v1/comments/{reply['id']}")
        assert response.status_code == 204
        response = await client.delete(f"/api/v1/comments/{parent['id']}")
        assert response.status_code == 204

        response = await client.get(f"/api/v1/comments/{parent['id']}")
        assert response.status_code == 404

    async def test_delete_missing_comment(self, client: AsyncClient) -> None:
        response = await client.delete(f"/api/v1/comments/{uuid.uuid4()}")
        assert response.status_code == 404

    async def test_move_reply_to_top_level(self, client: AsyncClient, scope) -> None:
        parent = await _create_comment(client, scope)
        reply = await _create_comment(client, scope, parent_id=parent["id"])
        response = await client.post(
            f"/api/v1/comments/{reply['id']}/parent", json={"parent_id": NIL}
        )
        assert response.status_code == 200
        assert response.json()["parent_id"] is None

    async def test_move_under_descendant(self, client: AsyncClient, scope) -> None:
        parent = await _create_comment(client, scope)
        reply = await _create_comment(client, scope, parent_id=parent["id"])
        response = await client.post(
            f"/api/v1/comments/{parent['id']}/parent", json={"parent_id": reply["id"]}
        )
        assert response.status_code == 409


class TestImport:
    async def test_import_out_of_order_batch(self, client: AsyncClient, scope) -> None:
        root_id, reply_id = str(uuid.uuid4()), str(uuid.uuid4())
        response = await client.post(
            "/api/v1/comments/import",
            json=[
                scope.json(
                    id=reply_id,
                    parent_id=root_id,
                    created_at="2020-05-01T10:00:00Z",
                ),
                scope.json(id=root_id, created_at="2020-05-01T09:00:00Z"),
            ],
        )
        assert response.status_code == 201, response.text
        assert [c["id"] for c in response.json()] == [root_id, reply_id]

        response = await client.get(f"/api/v1/contents/{scope.content_id}/comments")
        assert [c["id"] for c in response.json()["items"]] == [root_id, reply_id]


class TestSiteViews:
    async def test_site_queue_and_stats(self, client: AsyncClient, scope, make_scope) -> None:
        sibling = make_scope(site_id=scope.site_id)
        await _create_comment(client, scope)
        held = await _create_comment(client, sibling, moderation_status=0)
        await _create_comment(client, make_scope(), moderation_status=0)

        response = await client.get(
            f"/api/v1/sites/{scope.site_id}/comments", params={"status": 0}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == held["id"]

        response = await client.get(f"/api/v1/sites/{scope.site_id}/comments/stats")
        assert response.status_code == 200
        assert response.json() == {
            "site_id": str(scope.site_id),
            "pending": 1,
            "approved": 1,
            "spam": 0,
            "rejected": 0,
            "total": 2,
        }


class TestHealth:
    async def test_liveness(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_ready_when_store_answers(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("commentstore.main.ping", AsyncMock(return_value=None))
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_not_ready_when_store_down(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        down = OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))
        monkeypatch.setattr("commentstore.main.ping", AsyncMock(side_effect=down))
        response = await client.get("/health/ready")
        assert response.status_code == 503
        assert response.json()["error"] == "STORAGE_UNAVAILABLE"
