"""View ledger model: one row per (content, viewer identity)."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class IdentityKind(str, enum.Enum):
    USER = "user"
    SESSION = "session"
    IP = "ip"


class ContentView(Base):
    __tablename__ = "content_views"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("content.id", ondelete="CASCADE"), nullable=False)
    identity_kind = Column(Enum(IdentityKind), nullable=False)
    identity_key = Column(String(255), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    # Number of counted views this row stands for; stays 1 unless a cooldown window re-arms it
    counted_views = Column(Integer, default=1, server_default="1", nullable=False)
    first_viewed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    viewed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    content = relationship("Content", back_populates="views")
    user = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("content_id", "identity_kind", "identity_key", name="uq_content_view_identity"),
        Index("idx_content_views_content_viewed", "content_id", "viewed_at"),
        Index("idx_content_views_viewed_at", "viewed_at"),
    )

    def __repr__(self) -> str:
        return f"<ContentView(content={self.content_id}, {self.identity_kind}:{self.identity_key})>"
