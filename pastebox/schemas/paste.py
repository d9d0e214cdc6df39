"""Pydantic schemas for paste endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field, field_serializer

from pastebox.services.paste_store import format_timestamp


class CreatePasteRequest(BaseModel):
    paste: str


class CreatePasteResponse(BaseModel):
    id: str


class PasteResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    content: str
    created_at: datetime = Field(serialization_alias="createdAt")

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return format_timestamp(value)
