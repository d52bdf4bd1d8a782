"""Post-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PostCreate(BaseModel):
    """Schema for the body of a create-post request.

    Any creation time sent by the client is dropped; see `Post.stamp`.
    """

    cid: str = Field("", description="CID of the image returned by upload-pic")
    description: str = Field("", description="Free text of the post")
    address: str = Field("", description="Opaque location or author identifier")
    tags: list[str] = Field(default_factory=list, description="Ordered tags")
    private: bool = Field(False, description="Visibility flag, passed through verbatim")

    # values are taken only as sent: "yes" or 1 is not a boolean
    model_config = ConfigDict(extra="ignore", strict=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: object) -> object:
        # null means "not supplied" for every client field
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class Post(PostCreate):
    """A post as relayed to OrbitDB, carrying the server-assigned creation time."""

    created_at: datetime

    @classmethod
    def stamp(cls, data: PostCreate, now: datetime) -> Post:
        """Build the relayed post from client data and the receipt time."""
        return cls(**data.model_dump(), created_at=now)


class CreatePostResponse(BaseModel):
    """Response returned once OrbitDB accepted the post."""

    message: str
    orbit_hash: str
    db_address: str
