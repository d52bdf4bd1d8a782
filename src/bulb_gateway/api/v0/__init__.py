"""Version 0 API endpoints."""

from .endpoints import posts_router, system_router, upload_router

__all__ = [
    "upload_router",
    "posts_router",
    "system_router",
]
