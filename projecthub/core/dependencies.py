"""
FastAPI dependency injection functions.

Provides Redis connections, the identity resolver (request → current user)
and the caller's membership rows for organization and project scopes.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.config import settings
from projecthub.core.database import get_db
from projecthub.core.exceptions import AuthenticationError
from projecthub.core.security import blacklist_redis_key, decode_access_token
from projecthub.models.member import OrganizationMember
from projecthub.models.project_member import ProjectMember
from projecthub.models.user import User

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> User:
    """
    Validate Bearer JWT and return the authenticated User.

    Raises AuthenticationError if:
    - No token provided
    - Token is invalid or expired
    - JTI is blacklisted
    - User does not exist or is inactive
    """
    if credentials is None:
        raise AuthenticationError()

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = UUID(payload.get("sub", ""))
    except (JWTError, ValueError):
        raise AuthenticationError()

    jti: str = payload.get("jti", "")
    if await redis.exists(blacklist_redis_key(jti)):
        raise AuthenticationError()

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise AuthenticationError()

    return user


# ---------------------------------------------------------------------------
# Membership resolution
# ---------------------------------------------------------------------------

async def load_org_member(
    db: AsyncSession, user_id: UUID, org_id: UUID
) -> OrganizationMember | None:
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def load_project_member(
    db: AsyncSession, user_id: UUID, project_id: UUID
) -> ProjectMember | None:
    result = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_org_membership(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> OrganizationMember | None:
    """
    The caller's membership row in the path organization, or None.

    Handlers pass the result to the policy functions in
    `projecthub.core.permissions`; absence is not an error here.
    """
    return await load_org_member(db, current_user.id, org_id)


@dataclass
class ProjectAccess:
    """The caller's rows at both scopes for a project-scoped request."""

    user: User
    org_member: OrganizationMember | None
    project_member: ProjectMember | None


async def get_project_access(
    org_id: UUID,
    project_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ProjectAccess:
    """
    Resolve the caller's organization and project memberships.

    The two reads are independent; a membership change between them is
    tolerated.
    """
    org_member = await load_org_member(db, current_user.id, org_id)
    project_member = await load_project_member(db, current_user.id, project_id)
    return ProjectAccess(
        user=current_user,
        org_member=org_member,
        project_member=project_member,
    )


async def close_redis() -> None:
    """Close the shared Redis client on shutdown."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
