"""
Engagement Routes

Content reads, view counting, likes, random discovery and counter repair.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user, get_optional_user
from app.database import get_db
from app.exceptions import AuthorizationError, ContentNotFoundError
from app.middleware.rate_limit import engagement_limit, limiter
from app.models.content import Content, ContentStatus
from app.models.user import User
from app.schemas.engagement import (
    ApiResponse,
    ContentResponse,
    DiscoveryResponse,
    LikedContentResponse,
    LikeResponse,
    LikerResponse,
    ReconcileResponse,
    ViewResponse,
    ViewStatsResponse,
)
from app.services.counter_service import CounterService
from app.services.discovery_service import discovery_service
from app.services.identity_service import extract_client_ip, normalize_ip, resolve_request_identity
from app.services.like_service import LikeService
from app.services.view_service import ViewService
from app.utils.metrics import record_view_outcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Engagement"])


async def fetch_content(content_id: int, db: AsyncSession) -> Content:
    content = await db.get(Content, content_id)
    if content is None:
        raise ContentNotFoundError(content_id)
    return content


def ensure_owner(content: Content, user: User) -> None:
    if content.user_id != user.id:
        raise AuthorizationError("Only the content owner can perform this action")


def serialize_content(content: Content) -> dict:
    return {**content.to_dict(), "category": content.category.to_summary() if content.category else None}


async def count_view(request: Request, db: AsyncSession, content_id: int, user: Optional[User]):
    identity = resolve_request_identity(request, user)
    return await ViewService(db).record_view(
        content_id,
        identity,
        ip_address=normalize_ip(extract_client_ip(request)),
        user_agent=request.headers.get("User-Agent"),
    )


# ============== Discovery ==============


@router.get("/content/random", response_model=ApiResponse[DiscoveryResponse])
async def get_random_content(
    category_id: Optional[int] = Query(None, ge=1, description="Restrict discovery to one category"),
    status: ContentStatus = Query(ContentStatus.PUBLISHED, description="Content status to draw from"),
    db: AsyncSession = Depends(get_db),
):
    """One random item per category, or one random item within ``category_id``."""
    selection = await discovery_service.get_random(db, category_id=category_id, status=status)
    return ApiResponse(data=selection)


# ============== Content ==============


@router.get("/content/{content_id}", response_model=ApiResponse[ContentResponse])
async def get_content(
    content_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """Read content. The view is counted on a best-effort basis and never fails the read."""
    content = await fetch_content(content_id, db)
    data = serialize_content(content)

    try:
        result = await count_view(request, db, content_id, user)
        data["view_count"] = result.view_count
    except Exception as e:
        logger.warning(f"View counting failed for content {content_id}: {e}")
        record_view_outcome("failed")

    return ApiResponse(data=data)


@router.delete("/content/{content_id}", response_model=ApiResponse[dict])
async def delete_content(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete content; its view ledger rows and likes go with it."""
    content = await fetch_content(content_id, db)
    ensure_owner(content, user)

    await db.delete(content)
    await db.commit()
    await discovery_service.evict_content(content_id)

    logger.info(f"Content {content_id} deleted by user {user.id}")
    return ApiResponse(data={"id": content_id}, message="Content deleted successfully")


@router.post("/content/{content_id}/reconcile", response_model=ApiResponse[ReconcileResponse])
async def reconcile_content_counters(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Recompute ``view_count`` and ``like_count`` from the ledgers."""
    content = await fetch_content(content_id, db)
    ensure_owner(content, user)

    result = await CounterService(db).reconcile(content_id)
    return ApiResponse(data=result.to_dict(), message="Counters reconciled")


# ============== Views ==============


@router.post("/content/{content_id}/view", response_model=ApiResponse[ViewResponse])
@limiter.limit(engagement_limit)
async def record_content_view(
    content_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """Count a view at most once per viewer identity."""
    result = await count_view(request, db, content_id, user)
    return ApiResponse(data=result.to_dict())


@router.get("/content/{content_id}/views", response_model=ApiResponse[ViewStatsResponse])
async def get_content_view_stats(
    content_id: int,
    limit: int = Query(10, ge=1, le=100, description="Number of recent viewers to include"),
    db: AsyncSession = Depends(get_db),
):
    service = ViewService(db)
    stats = await service.get_view_stats(content_id)
    stats["recent_viewers"] = await service.get_recent_viewers(content_id, limit=limit)
    return ApiResponse(data=stats)


# ============== Likes ==============


@router.post("/content/{content_id}/like", response_model=ApiResponse[LikeResponse])
@limiter.limit(engagement_limit)
async def toggle_content_like(
    content_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Like the content, or remove the caller's like if present."""
    user_id = user.id
    result = await LikeService(db).toggle_like(content_id, user_id)
    message = "Content liked" if result.liked else "Content unliked"
    return ApiResponse(data=result.to_dict(), message=message)


@router.get("/content/{content_id}/like", response_model=ApiResponse[LikeResponse])
async def get_content_like_status(
    content_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = await LikeService(db).get_like_status(content_id, user.id)
    return ApiResponse(data=result.to_dict())


@router.get("/content/{content_id}/likes", response_model=ApiResponse[list[LikerResponse]])
async def list_content_likes(content_id: int, db: AsyncSession = Depends(get_db)):
    likes = await LikeService(db).list_content_likes(content_id)
    return ApiResponse(data=likes)


@router.get("/users/me/likes", response_model=ApiResponse[list[LikedContentResponse]])
async def list_my_likes(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    likes = await LikeService(db).list_user_likes(user.id)
    return ApiResponse(data=likes)
