"""
Authentication endpoints.

Google sign-in, logout, token refresh, me, e-mail verification codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

import redis.asyncio as aioredis

from projecthub.core.database import get_db
from projecthub.core.dependencies import bearer_scheme, get_current_user, get_redis
from projecthub.core.exceptions import AuthenticationError
from projecthub.core.security import decode_access_token
from projecthub.models.user import User
from projecthub.schemas.auth import (
    LogoutRequest,
    MeResponse,
    OAuthCallbackResponse,
    OAuthGoogleRequest,
    OtpVerifyRequest,
    RefreshRequest,
    TokenResponse,
)
from projecthub.schemas.common import ApiResponse, MessageResponse
from projecthub.services.auth_service import AuthService
from projecthub.services.otp_service import OtpService

router = APIRouter()


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> AuthService:
    """Dependency that constructs AuthService."""
    return AuthService(db=db, redis=redis)


def get_otp_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> OtpService:
    return OtpService(db=db, redis=redis)


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------

@router.post(
    "/oauth/google",
    response_model=ApiResponse[OAuthCallbackResponse],
    summary="Sign in with a Google ID token",
)
async def oauth_google(
    data: OAuthGoogleRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[OAuthCallbackResponse]:
    """
    Verify a Google ID token and issue JWT tokens.

    First sign-in creates the account and a default workspace.
    """
    return ApiResponse(data=await service.sign_in_with_google(data.id_token))


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

@router.post(
    "/refresh",
    response_model=ApiResponse[TokenResponse],
    summary="Refresh access token",
)
async def refresh(
    data: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[TokenResponse]:
    """
    Exchange a valid refresh token for a new access + refresh token pair.

    Refresh tokens are rotated on every use.
    """
    return ApiResponse(data=await service.refresh(data.refresh_token))


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

@router.post(
    "/logout",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_200_OK,
    summary="Logout and revoke tokens",
)
async def logout(
    data: LogoutRequest,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[MessageResponse]:
    """
    Logout the current user.

    - Blacklists the current access token JTI in Redis
    - Deletes the refresh token from Redis
    """
    try:
        payload = decode_access_token(credentials.credentials if credentials else "")
    except JWTError:
        raise AuthenticationError()

    await service.logout(
        access_token_jti=payload.get("jti", ""),
        refresh_token=data.refresh_token,
    )
    return ApiResponse(data=MessageResponse(message="Logged out"))


# ---------------------------------------------------------------------------
# Me
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=ApiResponse[MeResponse],
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> ApiResponse[MeResponse]:
    """Return the currently authenticated user's profile."""
    return ApiResponse(data=await service.get_me(current_user))


# ---------------------------------------------------------------------------
# E-mail verification
# ---------------------------------------------------------------------------

@router.post(
    "/otp/send",
    response_model=ApiResponse[MessageResponse],
    summary="E-mail a verification code",
)
async def send_otp(
    current_user: User = Depends(get_current_user),
    service: OtpService = Depends(get_otp_service),
) -> ApiResponse[MessageResponse]:
    await service.send_code(current_user)
    return ApiResponse(data=MessageResponse(message="OTP sent successfully"))


@router.post(
    "/otp/verify",
    response_model=ApiResponse[MessageResponse],
    summary="Verify an e-mail verification code",
)
async def verify_otp(
    data: OtpVerifyRequest,
    current_user: User = Depends(get_current_user),
    service: OtpService = Depends(get_otp_service),
) -> ApiResponse[MessageResponse]:
    """Marks the caller's e-mail as verified on a matching, unexpired code."""
    await service.verify_code(current_user, data.code)
    return ApiResponse(data=MessageResponse(message="OTP verified successfully"))
