"""
Tests for the view ledger
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select, update

from app.exceptions import ContentNotFoundError
from app.models.content import Content
from app.models.content_view import ContentView, IdentityKind
from app.services.identity_service import ViewerIdentity, resolve_identity
from app.services.view_service import ViewService


async def ledger_rows(db, content_id: int) -> int:
    result = await db.execute(select(func.count(ContentView.id)).where(ContentView.content_id == content_id))
    return result.scalar_one()


class TestRecordView:
    @pytest.mark.asyncio
    async def test_first_view_is_counted(self, test_db, test_content):
        result = await ViewService(test_db).record_view(test_content.id, resolve_identity(session_id="A"))

        assert result.counted is True
        assert result.view_count == 1
        assert result.to_dict() == {"counted": True, "viewCount": 1}

    @pytest.mark.asyncio
    async def test_repeat_view_is_idempotent(self, test_db, test_content):
        service = ViewService(test_db)
        identity = resolve_identity(session_id="A")

        first = await service.record_view(test_content.id, identity)
        second = await service.record_view(test_content.id, identity)
        third = await service.record_view(test_content.id, identity)

        assert first.counted is True
        assert (second.counted, second.view_count) == (False, 1)
        assert (third.counted, third.view_count) == (False, 1)
        assert await ledger_rows(test_db, test_content.id) == 1

    @pytest.mark.asyncio
    async def test_two_sessions_then_repeat(self, test_db, test_content):
        """Sessions A and B count once each; a second view from A does not."""
        service = ViewService(test_db)

        a = await service.record_view(test_content.id, resolve_identity(session_id="A"))
        b = await service.record_view(test_content.id, resolve_identity(session_id="B"))
        again = await service.record_view(test_content.id, resolve_identity(session_id="A"))

        assert (a.counted, a.view_count) == (True, 1)
        assert (b.counted, b.view_count) == (True, 2)
        assert (again.counted, again.view_count) == (False, 2)

        await test_db.refresh(test_content)
        assert test_content.view_count == 2

    @pytest.mark.asyncio
    async def test_user_identity_records_user_id(self, test_db, test_content, test_user):
        await ViewService(test_db).record_view(
            test_content.id, resolve_identity(user_id=test_user.id), ip_address="10.0.0.1", user_agent="pytest"
        )

        row = (await test_db.execute(select(ContentView))).scalars().one()
        assert row.identity_kind == IdentityKind.USER
        assert row.identity_key == str(test_user.id)
        assert row.user_id == test_user.id
        assert row.ip_address == "10.0.0.1"
        assert row.user_agent == "pytest"

    @pytest.mark.asyncio
    async def test_unresolved_identity_is_not_counted(self, test_db, test_content):
        result = await ViewService(test_db).record_view(test_content.id, None)

        assert result.counted is False
        assert result.view_count == 0
        assert await ledger_rows(test_db, test_content.id) == 0

    @pytest.mark.asyncio
    async def test_unknown_content(self, test_db):
        with pytest.raises(ContentNotFoundError):
            await ViewService(test_db).record_view(999999, resolve_identity(session_id="A"))

    @pytest.mark.asyncio
    async def test_concurrent_views_from_one_identity_count_once(self, session_factory, test_content):
        identity = ViewerIdentity(IdentityKind.SESSION, "burst")

        async def view():
            async with session_factory() as db:
                return await ViewService(db).record_view(test_content.id, identity)

        results = await asyncio.gather(*(view() for _ in range(5)))

        assert sum(1 for r in results if r.counted) == 1
        async with session_factory() as db:
            assert await ledger_rows(db, test_content.id) == 1
            stored = await db.get(Content, test_content.id)
            assert stored.view_count == 1


class TestDedupWindow:
    @pytest.mark.asyncio
    async def test_permanent_dedup_ignores_old_views(self, test_db, test_content):
        service = ViewService(test_db, dedup_window_hours=None)
        identity = resolve_identity(session_id="A")
        await service.record_view(test_content.id, identity)

        await test_db.execute(update(ContentView).values(viewed_at=datetime.utcnow() - timedelta(days=365)))
        await test_db.commit()

        result = await service.record_view(test_content.id, identity)
        assert result.counted is False

    @pytest.mark.asyncio
    async def test_expired_window_counts_again(self, test_db, test_content):
        service = ViewService(test_db, dedup_window_hours=24)
        identity = resolve_identity(session_id="A")
        await service.record_view(test_content.id, identity)

        within = await service.record_view(test_content.id, identity)
        assert within.counted is False

        await test_db.execute(update(ContentView).values(viewed_at=datetime.utcnow() - timedelta(hours=25)))
        await test_db.commit()

        after = await service.record_view(test_content.id, identity)
        assert (after.counted, after.view_count) == (True, 2)

        row = (await test_db.execute(select(ContentView))).scalars().one()
        await test_db.refresh(row)
        assert row.counted_views == 2
        assert await ledger_rows(test_db, test_content.id) == 1


class TestViewStats:
    @pytest.mark.asyncio
    async def test_stats_and_recent_viewers(self, test_db, test_content, test_user):
        service = ViewService(test_db)
        await service.record_view(test_content.id, resolve_identity(user_id=test_user.id))
        await service.record_view(test_content.id, resolve_identity(session_id="anon"))
        await service.record_view(test_content.id, resolve_identity(client_ip="10.0.0.9"))

        stats = await service.get_view_stats(test_content.id)
        assert stats == {
            "content_id": test_content.id,
            "total_views": 3,
            "unique_viewers": 3,
            "views_today": 3,
            "views_this_week": 3,
        }

        viewers = await service.get_recent_viewers(test_content.id, limit=2)
        assert len(viewers) == 2
        usernames = {v["username"] for v in await service.get_recent_viewers(test_content.id)}
        assert test_user.username in usernames

    @pytest.mark.asyncio
    async def test_stats_unknown_content(self, test_db):
        with pytest.raises(ContentNotFoundError):
            await ViewService(test_db).get_view_stats(424242)


class TestPruneViews:
    @pytest.mark.asyncio
    async def test_prune_removes_old_rows_only(self, test_db, test_content):
        service = ViewService(test_db)
        await service.record_view(test_content.id, resolve_identity(session_id="old"))
        await service.record_view(test_content.id, resolve_identity(session_id="new"))

        await test_db.execute(
            update(ContentView)
            .where(ContentView.identity_key == "old")
            .values(viewed_at=datetime.utcnow() - timedelta(days=120))
        )
        await test_db.commit()

        assert await service.prune_views(retention_days=90) == 1
        assert await ledger_rows(test_db, test_content.id) == 1

    @pytest.mark.asyncio
    async def test_prune_disabled_without_retention(self, test_db, test_content, monkeypatch):
        from app.config import settings

        monkeypatch.setattr(settings, "view_retention_days", None)
        await ViewService(test_db).record_view(test_content.id, resolve_identity(session_id="A"))

        assert await ViewService(test_db).prune_views() == 0
        assert await ledger_rows(test_db, test_content.id) == 1
