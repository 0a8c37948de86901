"""
One-Time Password Service

Six-digit codes for signup email verification and second-step login.
Codes are stored as bcrypt hashes with an expiry and an attempt counter.
"""

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.config import settings
from spare_finance.api.db.models import OTPCode, User, as_utc

logger = logging.getLogger(__name__)

OTP_PURPOSES = ("signup", "login")
OTP_PATTERN = re.compile(r"^\d{6}$")


def generate_code() -> str:
    """Random 6-digit code (leading zeros kept)."""
    return f"{secrets.randbelow(10**6):06d}"


def is_valid_code_format(code: str) -> bool:
    return bool(code) and OTP_PATTERN.match(code) is not None


class OTPService:
    """Issue and verify one-time passwords."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def issue(self, user: User, purpose: str) -> str:
        """
        Create a fresh code for user, invalidating any outstanding ones.

        Returns:
            The plaintext code (to be emailed, never stored)
        """
        if purpose not in OTP_PURPOSES:
            raise ValueError(f"Unknown OTP type: {purpose}")

        await self.invalidate(user, purpose)

        code = generate_code()
        otp = OTPCode(
            user_id=user.id,
            purpose=purpose,
            code_hash=bcrypt.hashpw(code.encode(), bcrypt.gensalt()).decode(),
            expires_at=datetime.now(timezone.utc)
            + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
        )
        self.db.add(otp)
        await self.db.commit()

        logger.info("Issued %s OTP for user %s", purpose, user.id)
        return code

    async def invalidate(self, user: User, purpose: str) -> None:
        now = datetime.now(timezone.utc)
        await self.db.execute(
            update(OTPCode)
            .where(
                OTPCode.user_id == user.id,
                OTPCode.purpose == purpose,
                OTPCode.consumed_at.is_(None),
            )
            .values(consumed_at=now)
        )

    async def get_active(self, user: User, purpose: str) -> Optional[OTPCode]:
        result = await self.db.execute(
            select(OTPCode)
            .where(
                OTPCode.user_id == user.id,
                OTPCode.purpose == purpose,
                OTPCode.consumed_at.is_(None),
            )
            .order_by(OTPCode.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def verify(self, user: User, purpose: str, code: str) -> None:
        """
        Check a code and consume it.

        Raises:
            ValueError: Malformed, missing, expired, exhausted or wrong code
        """
        if not is_valid_code_format(code):
            raise ValueError("Code must be 6 digits")

        otp = await self.get_active(user, purpose)
        if not otp:
            raise ValueError("No active code. Request a new one")

        now = datetime.now(timezone.utc)
        if as_utc(otp.expires_at) < now:
            otp.consumed_at = now
            await self.db.commit()
            raise ValueError("Code has expired. Request a new one")

        if otp.attempts >= settings.OTP_MAX_ATTEMPTS:
            otp.consumed_at = now
            await self.db.commit()
            raise ValueError("Too many attempts. Request a new code")

        if not bcrypt.checkpw(code.encode(), otp.code_hash.encode()):
            otp.attempts += 1
            await self.db.commit()
            logger.warning(
                "Invalid %s OTP for user %s (attempt %d)",
                purpose, user.id, otp.attempts,
            )
            raise ValueError("Invalid code")

        otp.consumed_at = now
        await self.db.commit()
