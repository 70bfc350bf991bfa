"""
View Service

Records content views counted at most once per viewer identity.

The ledger holds one row per (content, identity kind, identity key), guarded
by a unique constraint. A view is countable only when the conflict-ignoring
insert actually creates the row, so duplicate or concurrent requests from
the same identity can never inflate ``view_count``.

By default a counted view is permanent: a returning visitor is never counted
again. Setting ``view_dedup_window_hours`` switches to a rolling cooldown in
which a row older than the window is re-armed by a single conditional
UPDATE and the view counts again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import ContentNotFoundError
from app.models.content import Content
from app.models.content_view import ContentView, IdentityKind
from app.models.user import User
from app.services.counter_service import CounterField, CounterService
from app.services.identity_service import ViewerIdentity
from app.utils.metrics import record_view_outcome
from app.utils.store import insert_ignoring_conflicts, store_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewResult:
    counted: bool
    view_count: int

    def to_dict(self) -> dict:
        return {"counted": self.counted, "viewCount": self.view_count}


class ViewService:
    """Service for the view ledger."""

    def __init__(self, db: AsyncSession, dedup_window_hours: int | None = None):
        self.db = db
        self.counters = CounterService(db)
        if dedup_window_hours is None:
            dedup_window_hours = settings.view_dedup_window_hours
        self.dedup_window = timedelta(hours=dedup_window_hours) if dedup_window_hours else None

    async def record_view(
        self,
        content_id: int,
        identity: ViewerIdentity | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ViewResult:
        """
        Record a view of content by ``identity``.

        Returns ``counted=True`` with the incremented count when this is the
        identity's first countable view, otherwise ``counted=False`` with the
        current count. Raises ContentNotFoundError for unknown content.
        """
        async with store_operation(self.db, "record_view"):
            stored_views, _ = await self.counters.current(content_id)

            if identity is None:
                record_view_outcome("unresolved")
                return ViewResult(counted=False, view_count=stored_views)

            now = datetime.utcnow()
            stmt = insert_ignoring_conflicts(
                self.db,
                ContentView,
                ["content_id", "identity_kind", "identity_key"],
                content_id=content_id,
                identity_kind=identity.kind,
                identity_key=identity.key,
                user_id=int(identity.key) if identity.kind == IdentityKind.USER and identity.key.isdigit() else None,
                ip_address=ip_address,
                user_agent=user_agent,
                counted_views=1,
                first_viewed_at=now,
                viewed_at=now,
            )
            inserted = (await self.db.execute(stmt)).rowcount == 1

            counted = inserted or await self._rearm_expired_view(content_id, identity, now, ip_address, user_agent)
            if not counted:
                # Nothing was written; end the transaction without expiring loaded objects
                await self.db.commit()
                record_view_outcome("duplicate", identity.kind.value)
                return ViewResult(counted=False, view_count=stored_views)

            view_count = await self.counters.adjust(content_id, CounterField.VIEW_COUNT, +1)
            await self.db.commit()

        record_view_outcome("counted", identity.kind.value)
        logger.debug(f"View counted: content={content_id} identity={identity} view_count={view_count}")
        return ViewResult(counted=True, view_count=view_count)

    async def _rearm_expired_view(
        self,
        content_id: int,
        identity: ViewerIdentity,
        now: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> bool:
        """Count a repeat view whose previous one fell outside the cooldown window."""
        if self.dedup_window is None:
            return False

        result = await self.db.execute(
            update(ContentView)
            .where(
                and_(
                    ContentView.content_id == content_id,
                    ContentView.identity_kind == identity.kind,
                    ContentView.identity_key == identity.key,
                    ContentView.viewed_at < now - self.dedup_window,
                )
            )
            .values(
                counted_views=ContentView.counted_views + 1,
                viewed_at=now,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_view_stats(self, content_id: int) -> dict[str, Any]:
        """Total views, unique viewers, and recent activity for content."""
        stored_views, _ = await self.counters.current(content_id)

        now = datetime.utcnow()
        day_ago = now - timedelta(hours=24)
        week_ago = now - timedelta(days=7)

        result = await self.db.execute(
            select(
                func.count(ContentView.id).label("unique_viewers"),
                func.count(ContentView.id).filter(ContentView.viewed_at > day_ago).label("views_today"),
                func.count(ContentView.id).filter(ContentView.viewed_at > week_ago).label("views_this_week"),
            ).where(ContentView.content_id == content_id)
        )
        row = result.one()

        return {
            "content_id": content_id,
            "total_views": stored_views,
            "unique_viewers": row.unique_viewers or 0,
            "views_today": row.views_today or 0,
            "views_this_week": row.views_this_week or 0,
        }

    async def get_recent_viewers(self, content_id: int, limit: int = 10) -> list[dict[str, Any]]:
        """Most recent ledger rows for content, with usernames for signed-in viewers."""
        if await self.db.get(Content, content_id) is None:
            raise ContentNotFoundError(content_id)

        result = await self.db.execute(
            select(ContentView, User.username)
            .outerjoin(User, ContentView.user_id == User.id)
            .where(ContentView.content_id == content_id)
            .order_by(ContentView.viewed_at.desc())
            .limit(limit)
        )
        return [
            {
                "identity_kind": view.identity_kind.value,
                "user_id": view.user_id,
                "username": username,
                "viewed_at": view.viewed_at.isoformat(),
            }
            for view, username in result.all()
        ]

    async def prune_views(self, retention_days: int | None = None) -> int:
        """
        Delete ledger rows last viewed before the retention horizon.

        Stored counters are left alone; a later reconcile only sees the
        retained rows.
        """
        retention_days = retention_days or settings.view_retention_days
        if not retention_days:
            return 0

        threshold = datetime.utcnow() - timedelta(days=retention_days)
        async with store_operation(self.db, "prune_views"):
            result = await self.db.execute(
                delete(ContentView)
                .where(ContentView.viewed_at < threshold)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

        deleted = result.rowcount or 0
        logger.info(f"View ledger pruned: {deleted} row(s) older than {retention_days} day(s)")
        return deleted
