"""Pydantic schemas for request/response validation."""

from .backend import DatabaseReceipt, StorageReceipt
from .common import ErrorResponse, UploadResponse
from .post import CreatePostResponse, Post, PostCreate

__all__ = [
    "CreatePostResponse",
    "DatabaseReceipt",
    "ErrorResponse",
    "Post",
    "PostCreate",
    "StorageReceipt",
    "UploadResponse",
]
