"""API routes."""

from .content import router as content_router, areas_router

__all__ = [
    "content_router",
    "areas_router",
]
