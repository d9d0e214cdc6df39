"""Account API endpoints: registration, verification, login, profile and password reset."""

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from pastebox.database import get_db
from pastebox.dependencies import get_bearer_token
from pastebox.schemas.auth import (
    CredentialsRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetRequest,
    ProfilePictureResponse,
    ProfileResponse,
    ResetPasswordRequest,
)
from pastebox.services.auth import get_auth_service
from pastebox.services.blob_store import BlobStore, get_blob_store

router = APIRouter(tags=["Accounts"])


@router.post("/api/register", response_model=MessageResponse)
def register(body: CredentialsRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Create an unverified account and queue the verification email."""
    get_auth_service().register(db, body.email, body.password)
    return MessageResponse(message="Registration successful. Please check your email to verify.")


@router.get("/verify-email", response_model=MessageResponse)
def verify_email(token: str = "", db: Session = Depends(get_db)) -> MessageResponse:
    """Confirm an email address from the link in the verification email."""
    get_auth_service().verify_email(db, token)
    return MessageResponse(message="Email verified successfully.")


@router.post("/api/login", response_model=LoginResponse)
def login(body: CredentialsRequest, db: Session = Depends(get_db)) -> LoginResponse:
    """Authenticate and receive a session token."""
    result = get_auth_service().login(db, body.email, body.password)
    return LoginResponse(token=result.token, profile_picture=result.profile_picture)


@router.get("/api/profile", response_model=ProfileResponse)
def profile(token: str = Depends(get_bearer_token), db: Session = Depends(get_db)) -> ProfileResponse:
    """Return the profile of the session's user."""
    user = get_auth_service().get_profile(db, token)
    return ProfileResponse.model_validate(user)


@router.post("/api/uploadProfilePicture", response_model=ProfilePictureResponse)
async def upload_profile_picture(
    profile_picture: UploadFile = File(alias="profilePicture"),
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
) -> ProfilePictureResponse:
    """Store a new profile picture for the session's user."""
    auth_service = get_auth_service()
    # Reject bad sessions before writing anything to disk
    auth_service.get_profile(db, token)
    blob_ref = await blob_store.store(profile_picture)
    user = auth_service.set_profile_picture(db, token, blob_ref)
    return ProfilePictureResponse(profile_picture=user.profile_picture)


@router.post("/api/password-reset-request", response_model=MessageResponse)
def password_reset_request(body: PasswordResetRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Queue a password reset email."""
    get_auth_service().request_password_reset(db, body.email)
    return MessageResponse(message="Password reset email sent. Please check your email.")


@router.post("/api/reset-password", response_model=MessageResponse)
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)) -> MessageResponse:
    """Set a new password using the token from the reset email."""
    get_auth_service().reset_password(db, body.token, body.new_password)
    return MessageResponse(message="Password reset successful.")
