"""API endpoint modules for version 0."""

from .posts import router as posts_router
from .system import router as system_router
from .upload import router as upload_router

__all__ = [
    "upload_router",
    "posts_router",
    "system_router",
]
