"""
E-mail verification codes.

A six digit code lives in Redis under otp:{email} until it expires or is
used. Sending is synchronous: the request fails if the e-mail is not sent.
"""

from __future__ import annotations

import asyncio
import logging

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.core.config import settings
from projecthub.core.exceptions import TransientError, ValidationError
from projecthub.core.security import generate_otp_code, otp_redis_key
from projecthub.models.user import User
from projecthub.workers.email_tasks import deliver_email, render_otp_email

logger = logging.getLogger(__name__)


class OtpService:

    def __init__(self, db: AsyncSession, redis: aioredis.Redis) -> None:
        self.db = db
        self.redis = redis

    async def send_code(self, user: User) -> None:
        """Store a fresh code (replacing any previous one) and e-mail it."""
        code = generate_otp_code()
        await self.redis.setex(
            otp_redis_key(user.email),
            settings.OTP_EXPIRE_MINUTES * 60,
            code,
        )

        subject, html = render_otp_email(code)
        try:
            await asyncio.to_thread(deliver_email, user.email, subject, html)
        except Exception:
            logger.exception("Failed to send verification code to user %s", user.id)
            raise TransientError("Failed to send OTP")

        logger.info("Verification code sent to user %s", user.id)

    async def verify_code(self, user: User, code: str) -> None:
        key = otp_redis_key(user.email)
        stored = await self.redis.get(key)
        if stored is None or stored != code:
            raise ValidationError("Invalid or expired OTP")

        await self.redis.delete(key)
        user.email_verified = True
        await self.db.flush()
        logger.info("User %s verified their e-mail", user.id)
