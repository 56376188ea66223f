"""
Authentication API endpoints.

Handles registration, login, refresh-token rotation, logout, email
verification and password reset/change. The refresh token travels only in
an http-only cookie; access tokens are returned in the body.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationInfo, field_validator

from app.api.deps import (
    get_auth_service,
    get_current_user,
    get_settings,
    get_token_issuer,
)
from app.core.config import Settings
from app.core.exceptions import AuthenticationError, InvalidTokenError
from app.core.security import validate_password_strength
from app.core.tokens import TokenIssuer
from app.models import User
from app.services.auth import AuthResult, AuthService

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

GENERIC_RESEND_MESSAGE = (
    "If an account with that email exists and is not yet verified, "
    "a new verification email has been sent."
)
GENERIC_RESET_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


# ============== Pydantic Schemas ==============


def validate_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


def _check_password(value: str) -> str:
    errors = validate_password_strength(value)
    if errors:
        raise ValueError("; ".join(errors))
    return value


def _check_required(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Field is required")
    return value


EmailField = Annotated[str, AfterValidator(validate_email)]
StrongPassword = Annotated[str, AfterValidator(_check_password)]
RequiredStr = Annotated[str, AfterValidator(_check_required)]


class RegisterRequest(BaseModel):
    """Schema for user registration."""

    name: RequiredStr
    email: EmailField
    password: StrongPassword
    company_name: RequiredStr


class LoginRequest(BaseModel):
    email: EmailField
    password: RequiredStr


class EmailRequest(BaseModel):
    """Schema for resend-verification and forgot-password."""

    email: EmailField


class VerifyEmailRequest(BaseModel):
    token: RequiredStr


class ResetPasswordRequest(BaseModel):
    token: RequiredStr
    new_password: StrongPassword
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and v != new_password:
            raise ValueError("New password and confirm password do not match")
        return v


class ChangePasswordRequest(BaseModel):
    current_password: RequiredStr
    new_password: StrongPassword
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and v != new_password:
            raise ValueError("New password and confirm password do not match")
        return v


class VerifyTokenRequest(BaseModel):
    token: str


class UserResponse(BaseModel):
    """Schema for user response (without password or token state)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    company_name: str
    email_verified: bool


class ProfileResponse(UserResponse):
    files_uploaded: int
    batch_analysis_count: int
    compare_resumes_count: int
    selected_candidate_count: int
    created_at: datetime


class ApiResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[dict[str, Any]] = None


# ============== Helper Functions ==============


def set_refresh_cookie(response: Response, token: str, config: Settings) -> None:
    response.set_cookie(
        key=config.REFRESH_COOKIE_NAME,
        value=token,
        max_age=config.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path=config.REFRESH_COOKIE_PATH,
        secure=config.is_production,
        httponly=True,
        samesite="strict",
    )


def clear_refresh_cookie(response: Response, config: Settings) -> None:
    response.delete_cookie(
        key=config.REFRESH_COOKIE_NAME,
        path=config.REFRESH_COOKIE_PATH,
        secure=config.is_production,
        httponly=True,
        samesite="strict",
    )


def session_payload(result: AuthResult) -> dict[str, Any]:
    return {
        "accessToken": result.access_token,
        "tokenType": "bearer",
        "user": UserResponse.model_validate(result.user).model_dump(),
    }


# ============== API Endpoints ==============


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Register a new user.

    The account starts unverified; a verification link is emailed.
    """
    user = await auth.register(
        name=payload.name,
        email=payload.email,
        password=payload.password,
        company_name=payload.company_name,
    )
    return ApiResponse(
        message="User registered successfully. Please check your email to verify your account.",
        data={
            "user": UserResponse.model_validate(user).model_dump(),
            "verificationPending": True,
        },
    )


@router.post("/login", response_model=ApiResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_settings),
):
    """
    Login and get a JWT access token.

    The refresh token is set as an http-only, same-site-strict cookie.
    """
    result = await auth.login(payload.email, payload.password)
    set_refresh_cookie(response, result.refresh_token, config)
    return ApiResponse(message="Login successful", data=session_payload(result))


@router.post("/refresh", response_model=ApiResponse)
async def refresh(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_settings),
):
    """
    Exchange the refresh cookie for a new access token; the cookie is rotated.

    A rejected token also clears the cookie.
    """
    try:
        result = auth.refresh(request.cookies.get(config.REFRESH_COOKIE_NAME))
    except InvalidTokenError as e:
        error = JSONResponse(
            status_code=e.status_code,
            content=e.to_dict(),
            headers={"WWW-Authenticate": "Bearer"},
        )
        clear_refresh_cookie(error, config)
        return error

    set_refresh_cookie(response, result.refresh_token, config)
    return ApiResponse(
        message="Token refreshed successfully",
        data={"accessToken": result.access_token, "tokenType": "bearer"},
    )


@router.post("/logout", response_model=ApiResponse)
async def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_settings),
):
    """Revoke the refresh token (if any) and clear the cookie. Always succeeds."""
    auth.logout(request.cookies.get(config.REFRESH_COOKIE_NAME))
    clear_refresh_cookie(response, config)
    return ApiResponse(message="Logged out successfully")


@router.post("/verify-email", response_model=ApiResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_settings),
):
    """Consume an email-verification token and sign the user in."""
    result = await auth.verify_email(payload.token)
    set_refresh_cookie(response, result.refresh_token, config)
    return ApiResponse(message="Email verified successfully", data=session_payload(result))


@router.post("/resend-verification", response_model=ApiResponse)
async def resend_verification(
    payload: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Send a new verification link. The response never reveals whether the email exists."""
    await auth.resend_verification(payload.email)
    return ApiResponse(message=GENERIC_RESEND_MESSAGE)


@router.post("/forgot-password", response_model=ApiResponse)
async def forgot_password(
    payload: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Start a password reset. The response never reveals whether the email exists."""
    await auth.forgot_password(payload.email)
    return ApiResponse(message=GENERIC_RESET_MESSAGE)


@router.post("/reset-password", response_model=ApiResponse)
async def reset_password(
    payload: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Set a new password using a reset token. All sessions are logged out."""
    await auth.reset_password(payload.token, payload.new_password)
    return ApiResponse(
        message="Password reset successfully",
        data={"message": "Password has been reset. Please login with your new password."},
    )


@router.post("/change-password", response_model=ApiResponse)
async def change_password(
    payload: ChangePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
    config: Settings = Depends(get_settings),
):
    """
    Change the password of the signed-in user.

    Requires valid JWT token in Authorization header. Other devices are
    logged out because the stored refresh token is revoked.
    """
    await auth.change_password(current_user, payload.current_password, payload.new_password)
    clear_refresh_cookie(response, config)
    return ApiResponse(
        message="Password changed successfully",
        data={"message": "Password has been changed. You have been logged out from other devices."},
    )


@router.get("/me", response_model=ProfileResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user profile.

    Requires valid JWT token in Authorization header.
    """
    return ProfileResponse.model_validate(current_user)


@router.post("/verify-token", response_model=ApiResponse)
async def verify_token(
    payload: VerifyTokenRequest,
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Check an access token and return its claims (used by companion services)."""
    try:
        claims = issuer.decode_access_token(payload.token)
    except InvalidTokenError:
        raise AuthenticationError("Invalid or expired token", code="TOKEN_VERIFICATION_FAILED")

    return ApiResponse(
        message="Token is valid",
        data={
            "userId": claims.user_id,
            "email": claims.email,
            "issuedAt": claims.issued_at.isoformat(),
            "expiresAt": claims.expires_at.isoformat(),
        },
    )
