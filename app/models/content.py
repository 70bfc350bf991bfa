from sqlalchemy import CheckConstraint, Column, Integer, String, Text, ForeignKey, DateTime, Enum, Index
from sqlalchemy.orm import relationship
from app.database import Base
from datetime import datetime
import enum


class ContentStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Content(Base):
    __tablename__ = "content"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(255), index=True, nullable=False)
    description = Column(Text, nullable=True)
    media_url = Column(String, nullable=True)
    thumbnail_url = Column(String, nullable=True)
    status = Column(Enum(ContentStatus), default=ContentStatus.PUBLISHED, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    # Denormalized engagement counters, maintained by CounterService only
    view_count = Column(Integer, default=0, server_default="0", nullable=False)
    like_count = Column(Integer, default=0, server_default="0", nullable=False)

    # Relationships
    owner = relationship("User", back_populates="contents", lazy="selectin")
    category = relationship("Category", back_populates="contents", lazy="selectin")
    views = relationship("ContentView", back_populates="content", cascade="all, delete-orphan", passive_deletes=True)
    likes = relationship("Like", back_populates="content", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("view_count >= 0", name="ck_content_view_count_non_negative"),
        CheckConstraint("like_count >= 0", name="ck_content_like_count_non_negative"),
        Index("idx_content_status", "status"),
        Index("idx_content_category_status", "category_id", "status"),
    )

    def to_dict(self) -> dict:
        """Plain JSON-safe representation, also used as the discovery cache payload."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "media_url": self.media_url,
            "thumbnail_url": self.thumbnail_url,
            "status": self.status.value if self.status else None,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "view_count": self.view_count,
            "like_count": self.like_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
