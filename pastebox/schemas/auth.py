"""Pydantic schemas for authentication and profile endpoints."""

from datetime import datetime, timezone

from pydantic import BaseModel, EmailStr, Field, field_serializer

from pastebox.services.paste_store import format_timestamp


class CredentialsRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    token: str
    profile_picture: str | None = Field(serialization_alias="profilePicture")


class ProfileResponse(BaseModel):
    model_config = {"from_attributes": True}

    email: str
    joined: datetime
    profile_picture: str | None = Field(serialization_alias="profilePicture")
    id: str
    pastes: list[str] = []

    @field_serializer("joined")
    def serialize_joined(self, value: datetime) -> str:
        # Stored naive in UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return format_timestamp(value)


class ProfilePictureResponse(BaseModel):
    profile_picture: str = Field(serialization_alias="profilePicture")


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = {"populate_by_name": True}

    token: str
    new_password: str = Field(alias="newPassword")


class MessageResponse(BaseModel):
    message: str
