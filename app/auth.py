"""Authentication routes backed by the identity provider."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.schemas import (
    AuthResponse,
    AuthUser,
    Credentials,
    EmailRequest,
    MessageResponse,
    OtpVerifyRequest,
    PasswordChangeRequest,
    PasswordUpdateRequest,
    Profile,
    ProfileUpdate,
    RegisterRequest,
)
from datastore.identity import (
    AuthenticationError,
    IdentityError,
    MockIdentityProvider,
    UserRecord,
    build_default_identity_provider,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def get_identity_provider() -> MockIdentityProvider:
    return build_default_identity_provider()


@contextmanager
def provider_errors() -> Iterator[None]:
    """Translate provider failures into HTTP errors."""
    try:
        yield
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except IdentityError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _auth_user(user: UserRecord) -> AuthUser:
    return AuthUser(id=user.id, email=user.email)


def _profile(user: UserRecord) -> Profile:
    return Profile(id=user.id, email=user.email, full_name=user.full_name, created_at=user.created_at)


@router.post("/register", response_model=AuthResponse, response_model_exclude_none=True)
def register(
    body: RegisterRequest,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> AuthResponse:
    with provider_errors():
        user = provider.sign_up(body.email, body.password)
    return AuthResponse(
        message="Please check your email to verify your account",
        requires_verification=True,
        user=_auth_user(user),
    )


@router.post("/otp/verify", response_model=AuthResponse, response_model_exclude_none=True)
def verify_email(
    body: OtpVerifyRequest,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> AuthResponse:
    with provider_errors():
        user, session = provider.verify_otp(body.email, body.otp, "signup")
    return AuthResponse(
        message="Email verified successfully!",
        user=_auth_user(user),
        access_token=session.token,
    )


@router.post("/otp/resend", response_model=MessageResponse)
def resend_otp(
    body: EmailRequest,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> MessageResponse:
    with provider_errors():
        provider.resend_signup_otp(body.email)
    return MessageResponse(message="Verification code resent successfully!")


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
def login(
    body: Credentials,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> AuthResponse:
    with provider_errors():
        user, session = provider.sign_in(body.email, body.password)
    return AuthResponse(message="Login successful!", user=_auth_user(user), access_token=session.token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    token: str = Depends(oauth2_scheme),
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> MessageResponse:
    provider.sign_out(token)
    return MessageResponse(message="Signed out")


@router.post("/password-reset", response_model=MessageResponse)
def request_password_reset(
    body: EmailRequest,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> MessageResponse:
    with provider_errors():
        provider.send_recovery_otp(body.email)
    return MessageResponse(message="Password reset code sent to your email")


@router.post("/password-reset/verify", response_model=AuthResponse, response_model_exclude_none=True)
def verify_recovery_otp(
    body: OtpVerifyRequest,
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> AuthResponse:
    with provider_errors():
        user, session = provider.verify_otp(body.email, body.otp, "recovery")
    return AuthResponse(
        message="Recovery code verified successfully!",
        user=_auth_user(user),
        access_token=session.token,
    )


@router.post("/password-reset/update", response_model=MessageResponse)
def reset_password(
    body: PasswordUpdateRequest,
    token: str = Depends(oauth2_scheme),
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> MessageResponse:
    with provider_errors():
        provider.update_password(token, body.password)
    provider.sign_out(token)
    return MessageResponse(
        message="Password updated successfully! Please log in with your new password."
    )


@router.post("/password/change", response_model=MessageResponse)
def change_password(
    body: PasswordChangeRequest,
    token: str = Depends(oauth2_scheme),
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> MessageResponse:
    with provider_errors():
        if not provider.check_password(token, body.current_password):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect",
            )
        provider.update_password(token, body.new_password)
    return MessageResponse(message="Password updated successfully")


@router.get("/me", response_model=Profile)
def current_user(
    token: str = Depends(oauth2_scheme),
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> Profile:
    with provider_errors():
        user = provider.get_user(token)
    return _profile(user)


@router.patch("/me", response_model=Profile)
def update_current_user(
    body: ProfileUpdate,
    token: str = Depends(oauth2_scheme),
    provider: MockIdentityProvider = Depends(get_identity_provider),
) -> Profile:
    with provider_errors():
        user = provider.update_profile(token, body.full_name)
    logger.info("Profile updated", extra={"email": user.email})
    return _profile(user)
