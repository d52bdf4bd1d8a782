"""Schemas for the responses of the IPFS and OrbitDB HTTP APIs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StorageReceipt(BaseModel):
    """One object of the IPFS ``/api/v0/add`` response."""

    name: str = Field("", alias="Name")
    hash: str = Field("", alias="Hash")
    size: str = Field("", alias="Size")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("size", mode="before")
    @classmethod
    def _size_as_text(cls, value: object) -> object:
        # Kubo sends Size as a string; other implementations send a number.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class DatabaseReceipt(BaseModel):
    """Response of the OrbitDB service ``/orbitdb/add`` endpoint."""

    hash: str = ""
    db_address: str = ""

    model_config = ConfigDict(extra="ignore")
