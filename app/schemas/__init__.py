from .engagement import (
    ApiResponse,
    CategorySummary,
    ContentResponse,
    CounterDriftResponse,
    DiscoveryResponse,
    LikedContentResponse,
    LikeResponse,
    LikerResponse,
    ReconcileResponse,
    RecentViewer,
    ViewResponse,
    ViewStatsResponse,
)

# Define the public API of this module
__all__ = [
    "ApiResponse",
    "CategorySummary",
    "ContentResponse",
    "CounterDriftResponse",
    "DiscoveryResponse",
    "LikedContentResponse",
    "LikeResponse",
    "LikerResponse",
    "ReconcileResponse",
    "RecentViewer",
    "ViewResponse",
    "ViewStatsResponse",
]
