"""
Counter Service

Keeps the denormalized ``view_count`` / ``like_count`` columns on content in
step with the view ledger and the like registry.

Hot-path updates go through ``adjust``, a single atomic UPDATE evaluated by
the store, so concurrent adjustments never lose an update. ``reconcile``
recomputes both counters from the fact tables and is meant for drift repair
only.
"""

import enum
import logging
from dataclasses import dataclass, field

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import ContentNotFoundError
from app.models.content import Content
from app.models.content_view import ContentView
from app.models.like import Like
from app.utils.metrics import record_counter_drift, record_reconciliation
from app.utils.store import store_operation

logger = logging.getLogger(__name__)


class CounterField(str, enum.Enum):
    VIEW_COUNT = "view_count"
    LIKE_COUNT = "like_count"


@dataclass(frozen=True)
class CounterDrift:
    """A stored counter that disagreed with its recomputed value."""

    content_id: int
    field: CounterField
    stored: int
    actual: int

    @property
    def delta(self) -> int:
        return self.actual - self.stored


@dataclass
class ReconcileResult:
    content_id: int
    view_count: int
    like_count: int
    drift: list[CounterDrift] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "content_id": self.content_id,
            "view_count": self.view_count,
            "like_count": self.like_count,
            "drift": [
                {"field": d.field.value, "stored": d.stored, "actual": d.actual} for d in self.drift
            ],
        }


class CounterService:
    """Atomic adjustment and reconciliation of content engagement counters."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def adjust(self, content_id: int, counter: CounterField, delta: int) -> int:
        """
        Atomically add ``delta`` (+1 or -1) to a counter and return the new value.

        The result is floored at zero. Does not commit; the caller owns the
        transaction so the ledger write and the adjustment land together.
        """
        if delta not in (1, -1):
            raise ValueError(f"Counter delta must be +1 or -1, got {delta}")
        counter = CounterField(counter)

        column = getattr(Content, counter.value)
        new_value = case((column + delta < 0, 0), else_=column + delta)
        result = await self.db.execute(
            update(Content)
            .where(Content.id == content_id)
            .values({counter.value: new_value})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        value = result.scalar_one_or_none()
        if value is None:
            raise ContentNotFoundError(content_id)
        return value

    async def current(self, content_id: int, for_update: bool = False) -> tuple[int, int]:
        """Return the stored ``(view_count, like_count)`` for content."""
        query = select(Content.view_count, Content.like_count).where(Content.id == content_id)
        if for_update:
            # Holds off concurrent adjust() calls until the reconciling transaction ends
            query = query.with_for_update()
        result = await self.db.execute(query)
        row = result.one_or_none()
        if row is None:
            raise ContentNotFoundError(content_id)
        return row.view_count, row.like_count

    async def recompute(self, content_id: int) -> tuple[int, int]:
        """Derive ``(view_count, like_count)`` from the fact tables."""
        views = await self.db.execute(
            select(func.coalesce(func.sum(ContentView.counted_views), 0)).where(ContentView.content_id == content_id)
        )
        likes = await self.db.execute(select(func.count(Like.id)).where(Like.content_id == content_id))
        return int(views.scalar_one()), int(likes.scalar_one())

    async def reconcile(self, content_id: int) -> ReconcileResult:
        """
        Recompute both counters from the ledgers and overwrite the stored values.

        Reads and the overwrite happen in one transaction. Running it twice
        with no intervening writes returns the same values and no drift on
        the second run.
        """
        async with store_operation(self.db, "reconcile"):
            stored_views, stored_likes = await self.current(content_id, for_update=True)
            view_count, like_count = await self.recompute(content_id)

            drift = [
                CounterDrift(content_id, CounterField.VIEW_COUNT, stored_views, view_count),
                CounterDrift(content_id, CounterField.LIKE_COUNT, stored_likes, like_count),
            ]
            drift = [d for d in drift if d.delta != 0]

            if drift:
                await self.db.execute(
                    update(Content)
                    .where(Content.id == content_id)
                    .values(view_count=view_count, like_count=like_count)
                    .execution_options(synchronize_session=False)
                )
            await self.db.commit()

        record_reconciliation()
        for d in drift:
            record_counter_drift(d.field.value)
            if abs(d.delta) > settings.counter_drift_tolerance:
                logger.warning(
                    f"DriftDetected: content={content_id} {d.field.value} stored={d.stored} actual={d.actual}"
                )
            else:
                logger.debug(f"Counter drift within tolerance corrected: content={content_id} {d.field.value}")

        return ReconcileResult(content_id, view_count, like_count, drift)

    async def reconcile_all(self, batch_size: int | None = None) -> list[ReconcileResult]:
        """Reconcile every content item, walking ids in batches. Returns only drifted results."""
        batch_size = batch_size or settings.reconcile_batch_size
        drifted: list[ReconcileResult] = []
        last_id = 0
        while True:
            result = await self.db.execute(
                select(Content.id).where(Content.id > last_id).order_by(Content.id).limit(batch_size)
            )
            ids = list(result.scalars().all())
            if not ids:
                break
            for content_id in ids:
                try:
                    reconciled = await self.reconcile(content_id)
                except ContentNotFoundError:
                    # Deleted between listing and reconciling
                    continue
                if reconciled.drift:
                    drifted.append(reconciled)
            last_id = ids[-1]

        logger.info(f"Counter reconciliation complete: {len(drifted)} item(s) corrected")
        return drifted
