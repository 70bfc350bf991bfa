from .category import Category
from .content import Content, ContentStatus
from .content_view import ContentView, IdentityKind
from .like import Like
from .user import User

__all__ = [
    "Category",
    "Content",
    "ContentStatus",
    "ContentView",
    "IdentityKind",
    "Like",
    "User",
]
