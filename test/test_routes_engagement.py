"""
Tests for the engagement HTTP routes
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.auth import create_access_token
from app.config import settings
from app.models.content import Content
from app.models.content_view import ContentView, IdentityKind
from app.models.like import Like
from app.services.view_service import ViewService
from utils.mock_utils import create_test_category, create_test_content

SESSION = settings.session_header_name


async def count_rows(session_factory, model, content_id: int) -> int:
    async with session_factory() as db:
        result = await db.execute(select(func.count(model.id)).where(model.content_id == content_id))
        return result.scalar_one()


class TestReadContent:
    @pytest.mark.asyncio
    async def test_read_counts_view_once(self, client, test_content):
        first = await client.get(f"/api/content/{test_content.id}", headers={SESSION: "reader"})
        second = await client.get(f"/api/content/{test_content.id}", headers={SESSION: "reader"})

        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["data"]["title"] == "Test Content"
        assert body["data"]["category"]["slug"] == "music"
        assert body["data"]["view_count"] == 1
        assert second.json()["data"]["view_count"] == 1

    @pytest.mark.asyncio
    async def test_read_unknown_content(self, client, test_db):
        response = await client.get("/api/content/999999")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": {
                "message": "Content with id '999999' not found",
                "code": "CONTENT_NOT_FOUND",
                "details": {"resource_type": "Content", "resource_id": 999999},
            },
        }

    @pytest.mark.asyncio
    async def test_view_failure_does_not_fail_read(self, client, test_content, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("ledger offline")

        monkeypatch.setattr(ViewService, "record_view", broken)
        response = await client.get(f"/api/content/{test_content.id}")

        assert response.status_code == 200
        assert response.json()["data"]["view_count"] == 0


class TestRecordView:
    @pytest.mark.asyncio
    async def test_two_sessions_then_repeat(self, client, test_content):
        url = f"/api/content/{test_content.id}/view"

        a = (await client.post(url, headers={SESSION: "A"})).json()["data"]
        b = (await client.post(url, headers={SESSION: "B"})).json()["data"]
        again = (await client.post(url, headers={SESSION: "A"})).json()["data"]

        assert a == {"counted": True, "viewCount": 1}
        assert b == {"counted": True, "viewCount": 2}
        assert again == {"counted": False, "viewCount": 2}

    @pytest.mark.asyncio
    async def test_authenticated_user_wins_over_session(
        self, client, test_content, test_user, auth_headers, session_factory
    ):
        url = f"/api/content/{test_content.id}/view"

        first = await client.post(url, headers={**auth_headers, SESSION: "S1"})
        second = await client.post(url, headers={**auth_headers, SESSION: "S2"})

        assert first.json()["data"]["counted"] is True
        assert second.json()["data"] == {"counted": False, "viewCount": 1}

        async with session_factory() as db:
            row = (await db.execute(select(ContentView))).scalars().one()
            assert row.identity_kind == IdentityKind.USER
            assert row.identity_key == str(test_user.id)

    @pytest.mark.asyncio
    async def test_anonymous_without_session_uses_client_address(self, client, test_content, session_factory):
        url = f"/api/content/{test_content.id}/view"

        assert (await client.post(url)).json()["data"]["counted"] is True
        assert (await client.post(url)).json()["data"]["counted"] is False

        async with session_factory() as db:
            row = (await db.execute(select(ContentView))).scalars().one()
            assert row.identity_kind == IdentityKind.IP

    @pytest.mark.asyncio
    async def test_invalid_token_views_anonymously(self, client, test_content, session_factory):
        response = await client.post(
            f"/api/content/{test_content.id}/view",
            headers={"Authorization": "Bearer not-a-token", SESSION: "S1"},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"counted": True, "viewCount": 1}

        async with session_factory() as db:
            row = (await db.execute(select(ContentView))).scalars().one()
            assert row.identity_kind == IdentityKind.SESSION
            assert row.identity_key == "S1"
            assert row.user_id is None

    @pytest.mark.asyncio
    async def test_expired_token_still_reads_content(self, client, test_content, test_user, session_factory):
        expired = create_access_token({"sub": test_user.id}, expires_delta=timedelta(minutes=-5))

        response = await client.get(f"/api/content/{test_content.id}", headers={"Authorization": f"Bearer {expired}"})

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Test Content"
        assert response.json()["data"]["view_count"] == 1

        async with session_factory() as db:
            row = (await db.execute(select(ContentView))).scalars().one()
            assert row.identity_kind == IdentityKind.IP

    @pytest.mark.asyncio
    async def test_view_stats(self, client, test_content):
        await client.post(f"/api/content/{test_content.id}/view", headers={SESSION: "A"})

        response = await client.get(f"/api/content/{test_content.id}/views")

        data = response.json()["data"]
        assert data["total_views"] == 1
        assert data["unique_viewers"] == 1
        assert data["recent_viewers"][0]["identity_kind"] == "session"


class TestLikes:
    @pytest.mark.asyncio
    async def test_like_requires_authentication(self, client, test_content):
        response = await client.post(f"/api/content/{test_content.id}/like")

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "AUTH_FAILED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_like_rejects_invalid_token(self, client, test_content):
        response = await client.post(
            f"/api/content/{test_content.id}/like", headers={"Authorization": "Bearer not-a-token"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"

    @pytest.mark.asyncio
    async def test_like_unlike_relike(self, client, test_content, auth_headers):
        url = f"/api/content/{test_content.id}/like"

        liked = (await client.post(url, headers=auth_headers)).json()
        unliked = (await client.post(url, headers=auth_headers)).json()
        relike = (await client.post(url, headers=auth_headers)).json()

        assert liked["data"] == {"liked": True, "likeCount": 1}
        assert liked["message"] == "Content liked"
        assert unliked["data"] == {"liked": False, "likeCount": 0}
        assert unliked["message"] == "Content unliked"
        assert relike["data"] == {"liked": True, "likeCount": 1}

        status = (await client.get(url, headers=auth_headers)).json()["data"]
        assert status == {"liked": True, "likeCount": 1}

    @pytest.mark.asyncio
    async def test_like_unknown_content(self, client, test_db, auth_headers):
        response = await client.post("/api/content/999999/like", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CONTENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_like_listings(self, client, test_content, test_user, auth_headers):
        await client.post(f"/api/content/{test_content.id}/like", headers=auth_headers)

        likers = (await client.get(f"/api/content/{test_content.id}/likes")).json()["data"]
        mine = (await client.get("/api/users/me/likes", headers=auth_headers)).json()["data"]

        assert [(liker["user_id"], liker["username"]) for liker in likers] == [(test_user.id, "testuser")]
        assert [(m["content_id"], m["content_title"]) for m in mine] == [(test_content.id, "Test Content")]


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_random_is_cached(self, client, test_content):
        first = (await client.get("/api/content/random")).json()
        second = (await client.get("/api/content/random")).json()

        assert first["data"]["cached"] is False
        assert second["data"]["cached"] is True
        assert first["data"]["items"][0]["id"] == test_content.id
        assert second["data"]["items"] == first["data"]["items"]

    @pytest.mark.asyncio
    async def test_random_unknown_category(self, client, test_db):
        response = await client.get("/api/content/random", params={"category_id": 777})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CATEGORY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_random_empty_category(self, client, test_db):
        category = await create_test_category(test_db, "Podcasts")

        response = await client.get("/api/content/random", params={"category_id": category.id})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NO_CONTENT_FOUND"

    @pytest.mark.asyncio
    async def test_random_rejects_bad_query(self, client, test_db):
        response = await client.get("/api/content/random", params={"category_id": 0})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestOwnerOperations:
    @pytest.mark.asyncio
    async def test_reconcile_repairs_counters(self, client, test_db, test_content, auth_headers):
        await client.post(f"/api/content/{test_content.id}/view", headers={SESSION: "A"})
        drifted = await create_test_content(test_db, "Drifted", test_content.user_id, view_count=12)

        response = await client.post(f"/api/content/{drifted.id}/reconcile", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["view_count"], data["like_count"]) == (0, 0)
        assert data["drift"] == [{"field": "view_count", "stored": 12, "actual": 0}]

    @pytest.mark.asyncio
    async def test_reconcile_forbidden_for_non_owner(self, client, test_content, other_auth_headers):
        response = await client.post(f"/api/content/{test_content.id}/reconcile", headers=other_auth_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_delete_cascades_and_evicts(self, client, test_content, auth_headers, session_factory):
        content_id = test_content.id
        await client.post(f"/api/content/{content_id}/view", headers={SESSION: "A"})
        await client.post(f"/api/content/{content_id}/like", headers=auth_headers)
        assert (await client.get("/api/content/random")).status_code == 200

        response = await client.delete(f"/api/content/{content_id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Content deleted successfully"
        assert await count_rows(session_factory, ContentView, content_id) == 0
        assert await count_rows(session_factory, Like, content_id) == 0
        async with session_factory() as db:
            assert await db.get(Content, content_id) is None

        # The cached selection held the deleted item and must not be served
        after = await client.get("/api/content/random")
        assert after.status_code == 404
        assert after.json()["error"]["code"] == "NO_CONTENT_FOUND"

    @pytest.mark.asyncio
    async def test_delete_forbidden_for_non_owner(self, client, test_content, other_auth_headers):
        response = await client.delete(f"/api/content/{test_content.id}", headers=other_auth_headers)
        assert response.status_code == 403


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_health(self, client, test_db):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_metrics(self, client, test_content):
        await client.post(f"/api/content/{test_content.id}/view", headers={SESSION: "metrics"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "engagement_views_recorded_total" in response.text
