"""
Like Service

Idempotent like/unlike toggling backed by the ``likes`` registry.

Each toggle is built from two existence-based atomic statements: a DELETE of
the (content, user) row, and only if nothing was deleted, a conflict-ignoring
INSERT. If neither statement changed the registry a concurrent toggle got in
between, and the pair is retried. Each call is one transition, and
``like_count`` only moves when a statement actually changed the registry.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, delete, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ContentNotFoundError, StoreUnavailableError
from app.models.content import Content
from app.models.like import Like
from app.models.user import User
from app.services.counter_service import CounterField, CounterService
from app.utils.metrics import record_like_toggle
from app.utils.store import insert_ignoring_conflicts, store_operation

logger = logging.getLogger(__name__)

MAX_TOGGLE_ATTEMPTS = 5


@dataclass(frozen=True)
class LikeResult:
    liked: bool
    like_count: int

    def to_dict(self) -> dict:
        return {"liked": self.liked, "likeCount": self.like_count}


class LikeService:
    """Service for the like registry."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.counters = CounterService(db)

    async def toggle_like(self, content_id: int, user_id: int) -> LikeResult:
        """
        Like the content if the user has not liked it, otherwise unlike it.

        Every call makes exactly one state transition, so N concurrent
        toggles for one (content, user) pair leave N mod 2 rows. When the
        INSERT loses a race to a concurrent toggle the row now exists, and
        the call goes back to the DELETE step.
        Raises ContentNotFoundError for unknown content.
        """
        async with store_operation(self.db, "toggle_like"):
            await self.counters.current(content_id)

            for attempt in range(1, MAX_TOGGLE_ATTEMPTS + 1):
                if await self._remove_like(content_id, user_id):
                    like_count = await self.counters.adjust(content_id, CounterField.LIKE_COUNT, -1)
                    await self.db.commit()
                    record_like_toggle("unliked")
                    logger.info(f"Content unliked: content={content_id}, user={user_id}")
                    return LikeResult(liked=False, like_count=like_count)

                if await self._add_like(content_id, user_id):
                    like_count = await self.counters.adjust(content_id, CounterField.LIKE_COUNT, +1)
                    await self.db.commit()
                    record_like_toggle("liked")
                    logger.info(f"Content liked: content={content_id}, user={user_id}")
                    return LikeResult(liked=True, like_count=like_count)

                record_like_toggle("retried")
                logger.info(f"Like toggle raced a concurrent toggle: content={content_id}, user={user_id}, attempt={attempt}")

            raise StoreUnavailableError(
                f"Like toggle did not settle after {MAX_TOGGLE_ATTEMPTS} attempts", operation="toggle_like"
            )

    async def _remove_like(self, content_id: int, user_id: int) -> bool:
        removed = await self.db.execute(
            delete(Like)
            .where(and_(Like.content_id == content_id, Like.user_id == user_id))
            .execution_options(synchronize_session=False)
        )
        return removed.rowcount == 1

    async def _add_like(self, content_id: int, user_id: int) -> bool:
        inserted = await self.db.execute(
            insert_ignoring_conflicts(self.db, Like, ["content_id", "user_id"], content_id=content_id, user_id=user_id)
        )
        return inserted.rowcount == 1

    async def has_user_liked(self, content_id: int, user_id: int) -> bool:
        result = await self.db.execute(
            select(exists().where(and_(Like.content_id == content_id, Like.user_id == user_id)))
        )
        return bool(result.scalar())

    async def get_like_status(self, content_id: int, user_id: int) -> LikeResult:
        """The user's current like state and the stored like count."""
        _, like_count = await self.counters.current(content_id)
        return LikeResult(liked=await self.has_user_liked(content_id, user_id), like_count=like_count)

    async def list_content_likes(self, content_id: int) -> list[dict[str, Any]]:
        """Users who liked the content, newest first."""
        if await self.db.get(Content, content_id) is None:
            raise ContentNotFoundError(content_id)

        result = await self.db.execute(
            select(Like, User.username, User.avatar_url)
            .outerjoin(User, Like.user_id == User.id)
            .where(Like.content_id == content_id)
            .order_by(Like.created_at.desc(), Like.id.desc())
        )
        return [
            {
                "user_id": like.user_id,
                "username": username,
                "user_avatar": avatar_url,
                "created_at": like.created_at.isoformat(),
            }
            for like, username, avatar_url in result.all()
        ]

    async def list_user_likes(self, user_id: int) -> list[dict[str, Any]]:
        """Content liked by the user, newest first."""
        result = await self.db.execute(
            select(Like, Content.title)
            .outerjoin(Content, Like.content_id == Content.id)
            .where(Like.user_id == user_id)
            .order_by(Like.created_at.desc(), Like.id.desc())
        )
        return [
            {
                "content_id": like.content_id,
                "content_title": title,
                "created_at": like.created_at.isoformat(),
            }
            for like, title in result.all()
        ]
