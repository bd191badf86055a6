"""
Authentication business logic.

Handles Google sign-in, first sign-in provisioning, token refresh, logout
and the current user profile.
All business logic lives here; routers only handle HTTP concerns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.config import settings
from projecthub.core.exceptions import AuthenticationError, ConflictError, TransientError
from projecthub.core.security import (
    blacklist_redis_key,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    refresh_token_redis_key,
)
from projecthub.models.member import OrganizationMember, OrganizationRole
from projecthub.models.organization import Organization
from projecthub.models.user import User
from projecthub.schemas.auth import (
    MembershipSummary,
    MeResponse,
    OAuthCallbackResponse,
    TokenResponse,
)
from projecthub.services.email_dispatch import dispatch
from projecthub.workers.email_tasks import send_welcome_email

logger = logging.getLogger(__name__)


@dataclass
class GoogleProfile:
    sub: str
    email: str
    name: str | None
    picture: str | None


async def verify_google_id_token(id_token: str) -> GoogleProfile:
    """
    Validate a Google ID token with Google's tokeninfo endpoint.

    The audience must be our client id and the e-mail must be verified.
    """
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                settings.GOOGLE_TOKENINFO_URL, params={"id_token": id_token}
            )
    except httpx.HTTPError as exc:
        logger.warning("Google token verification unavailable: %s", exc)
        raise TransientError()

    if response.status_code != 200:
        raise AuthenticationError("Invalid Google ID token")

    claims = response.json()
    if claims.get("aud") != settings.GOOGLE_CLIENT_ID:
        raise AuthenticationError("Invalid Google ID token")
    if str(claims.get("email_verified", "")).lower() != "true" or not claims.get("email"):
        raise AuthenticationError("Google account email is not verified")

    return GoogleProfile(
        sub=claims["sub"],
        email=claims["email"].lower(),
        name=claims.get("name"),
        picture=claims.get("picture"),
    )


def higher_res_avatar(picture: str | None) -> str | None:
    """Google serves 96px avatars by default; ask for the 400px variant."""
    if picture is None:
        return None
    return picture.replace("=s96-c", "=s400-c")


def default_workspace_name(user: User) -> str:
    owner = user.display_name or user.email.split("@")[0]
    return f"{owner}'s Workspace"


class AuthService:
    """Handles all authentication operations."""

    def __init__(self, db: AsyncSession, redis: aioredis.Redis) -> None:
        self.db = db
        self.redis = redis

    # -----------------------------------------------------------------------
    # Google sign-in
    # -----------------------------------------------------------------------

    async def sign_in_with_google(self, id_token: str) -> OAuthCallbackResponse:
        """
        Sign in (or sign up) with a Google ID token.

        - First sign-in creates the user, a default organization and the
          user's ORG_ADMIN membership in one commit, then queues a welcome email
        - An existing user without a Google id gets it linked
        - Issues JWT tokens
        """
        profile = await verify_google_id_token(id_token)

        result = await self.db.execute(select(User).where(User.email == profile.email))
        user = result.scalar_one_or_none()
        is_new_user = user is None

        if user is None:
            user = await self._provision_user(profile)
        elif user.google_id is None:
            user.google_id = profile.sub
            user.avatar_url = higher_res_avatar(profile.picture) or user.avatar_url
            user.email_verified = True
            await self.db.flush()
            logger.info("Linked Google account to user %s", user.id)

        if not user.is_active:
            raise AuthenticationError()

        tokens = await self._issue_tokens(user)
        return OAuthCallbackResponse(**tokens.model_dump(), is_new_user=is_new_user)

    async def _provision_user(self, profile: GoogleProfile) -> User:
        user = User(
            email=profile.email,
            display_name=profile.name,
            avatar_url=higher_res_avatar(profile.picture),
            google_id=profile.sub,
            email_verified=True,
        )
        self.db.add(user)
        await self.db.flush()

        workspace = Organization(name=default_workspace_name(user), is_active=True)
        self.db.add(workspace)
        await self.db.flush()

        self.db.add(
            OrganizationMember(
                organization_id=workspace.id,
                user_id=user.id,
                role=OrganizationRole.ORG_ADMIN,
            )
        )

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Account already exists")

        logger.info("Provisioned user %s with workspace %s", user.id, workspace.id)
        dispatch(
            send_welcome_email,
            to_email=user.email,
            display_name=user.display_name or user.email,
            workspace_name=workspace.name,
            frontend_url=settings.FRONTEND_URL,
        )
        return user

    # -----------------------------------------------------------------------
    # Refresh
    # -----------------------------------------------------------------------

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """
        Exchange a valid refresh token for a new token pair.

        - Validates refresh token JWT
        - Checks token exists in Redis
        - Rotates: deletes old refresh token, issues new pair
        """
        try:
            payload = decode_refresh_token(refresh_token)
            user_id = UUID(payload.get("sub", ""))
        except (JWTError, ValueError):
            raise AuthenticationError("Refresh token is invalid or expired")

        jti: str = payload.get("jti", "")

        redis_key = refresh_token_redis_key(str(user_id), jti)
        if not await self.redis.exists(redis_key):
            raise AuthenticationError("Refresh token has been revoked")

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError()

        # Rotate: delete old refresh token
        await self.redis.delete(redis_key)

        return await self._issue_tokens(user)

    # -----------------------------------------------------------------------
    # Logout
    # -----------------------------------------------------------------------

    async def logout(self, access_token_jti: str, refresh_token: str) -> None:
        """
        Logout user by:
        - Blacklisting the access token JTI
        - Deleting the refresh token from Redis
        """
        await self.redis.setex(
            blacklist_redis_key(access_token_jti),
            settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "1",
        )

        try:
            payload = decode_refresh_token(refresh_token)
        except JWTError:
            # Already expired refresh tokens have nothing left to revoke.
            logger.debug("Logout with an unusable refresh token")
            return

        await self.redis.delete(
            refresh_token_redis_key(payload.get("sub", ""), payload.get("jti", ""))
        )

    # -----------------------------------------------------------------------
    # Get current user (me)
    # -----------------------------------------------------------------------

    async def get_me(self, user: User) -> MeResponse:
        """Return current user profile with organization memberships."""
        result = await self.db.execute(
            select(OrganizationMember, Organization)
            .join(Organization, OrganizationMember.organization_id == Organization.id)
            .where(OrganizationMember.user_id == user.id)
            .order_by(OrganizationMember.joined_at)
        )
        return MeResponse(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            email_verified=user.email_verified,
            created_at=user.created_at,
            organizations=[
                MembershipSummary(
                    organization_id=org.id,
                    organization_name=org.name,
                    role=member.role,
                )
                for member, org in result.all()
            ],
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _issue_tokens(self, user: User) -> TokenResponse:
        """
        Create and store access + refresh token pair for a user.

        Stores refresh token JTI in Redis with TTL.
        """
        user_id = str(user.id)

        refresh_token, refresh_jti = create_refresh_token(user_id)
        access_token = create_access_token(user_id)

        ttl_seconds = settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
        await self.redis.setex(
            refresh_token_redis_key(user_id, refresh_jti),
            ttl_seconds,
            "1",
        )

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )
