from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.models.content import ContentStatus

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by every engagement endpoint."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class CategorySummary(BaseModel):
    id: int
    name: str
    slug: str
    icon: Optional[str] = None


class ContentResponse(BaseModel):
    id: int = Field(..., title="Content ID", description="The unique identifier for the content.")
    title: str = Field(..., title="Content Title")
    description: Optional[str] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    status: ContentStatus = Field(..., title="Content Status", description="draft, published or archived.")
    user_id: int = Field(..., title="Owner ID", description="The ID of the user who owns the content.")
    category_id: Optional[int] = None
    view_count: int = Field(0, ge=0, description="Counted views; may briefly lag the view ledger.")
    like_count: int = Field(0, ge=0, description="Likes; may briefly lag the like registry.")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category: Optional[CategorySummary] = None

    model_config = ConfigDict(use_enum_values=True)


class DiscoveryResponse(BaseModel):
    category: Optional[CategorySummary] = Field(None, description="Set when discovery was scoped to one category.")
    items: List[ContentResponse]
    cached: bool = Field(..., description="True when the selection was served from the discovery cache.")


class ViewResponse(BaseModel):
    counted: bool = Field(..., description="Whether this request incremented the view count.")
    view_count: int = Field(..., alias="viewCount")

    model_config = ConfigDict(populate_by_name=True)


class LikeResponse(BaseModel):
    liked: bool = Field(..., description="The caller's like state after the operation.")
    like_count: int = Field(..., alias="likeCount")

    model_config = ConfigDict(populate_by_name=True)


class RecentViewer(BaseModel):
    identity_kind: str
    user_id: Optional[int] = None
    username: Optional[str] = None
    viewed_at: datetime


class ViewStatsResponse(BaseModel):
    content_id: int
    total_views: int
    unique_viewers: int
    views_today: int
    views_this_week: int
    recent_viewers: List[RecentViewer] = []


class LikerResponse(BaseModel):
    user_id: int
    username: Optional[str] = None
    user_avatar: Optional[str] = None
    created_at: datetime


class LikedContentResponse(BaseModel):
    content_id: int
    content_title: Optional[str] = None
    created_at: datetime


class CounterDriftResponse(BaseModel):
    field: str
    stored: int
    actual: int


class ReconcileResponse(BaseModel):
    content_id: int
    view_count: int
    like_count: int
    drift: List[CounterDriftResponse] = []
