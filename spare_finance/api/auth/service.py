"""
Authentication Service

Registration, password checks, OTP second step and JWT issuance.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import UUID

import bcrypt
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.models import User
from spare_finance.api.auth.jwt import (
    create_access_token,
    create_refresh_token,
    verify_token,
    get_token_expiry_seconds,
)
from spare_finance.api.auth.otp import OTPService
from spare_finance.api.auth.schemas import UserRegisterRequest
from spare_finance.api.billing.plans import PlanService
from spare_finance.api.households.service import HouseholdService
from spare_finance.api.services.email import EmailSender

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Login refused for a reason the client should see (HTTP 403)."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


class AuthService:
    """Authentication service with password, OTP and JWT management."""

    def __init__(self, db: AsyncSession, email_sender: Optional[EmailSender] = None):
        self.db = db
        self.email_sender = email_sender
        self.otp = OTPService(db)

    async def _send_otp(self, user: User, purpose: str) -> None:
        code = await self.otp.issue(user, purpose)
        if self.email_sender is not None:
            await self.email_sender.send_otp(user.email, code, purpose)

    async def register(self, data: UserRegisterRequest) -> User:
        """
        Register a new user with a personal household and free plan,
        then send the signup verification code.

        Raises:
            ValueError: If email already exists
        """
        existing = await self.get_user_by_email(data.email)
        if existing:
            raise ValueError("Email already registered")

        user = User(
            email=data.email.lower(),
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
        )
        self.db.add(user)
        await self.db.flush()

        await HouseholdService(self.db).create_household(
            user, name=user.full_name or "Personal", household_type="personal"
        )
        await PlanService(self.db).create_free_subscription(user.id)

        await self.db.commit()
        await self.db.refresh(user)

        await self._send_otp(user, "signup")
        logger.info("Registered user %s", user.id)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Check email/password.

        Returns:
            User if the password matches, None otherwise

        Raises:
            AuthError: Blocked, inactive or unverified account
        """
        user = await self.get_user_by_email(email)
        if not user or not check_password(password, user.password_hash):
            return None

        if user.is_blocked or not user.is_active:
            raise AuthError("Your account has been blocked. Contact support")
        if not user.is_verified:
            raise AuthError("Please verify your email before logging in")

        return user

    async def start_login(self, email: str, password: str) -> Optional[User]:
        """Validate credentials and send a login code."""
        user = await self.authenticate(email, password)
        if user is not None:
            await self._send_otp(user, "login")
        return user

    async def verify_otp(self, email: str, code: str, purpose: str) -> User:
        """
        Verify a signup or login code.

        Raises:
            ValueError: Unknown email or invalid code
            AuthError: Blocked account
        """
        user = await self.get_user_by_email(email)
        if not user:
            raise ValueError("Invalid code")
        if user.is_blocked or not user.is_active:
            raise AuthError("Your account has been blocked. Contact support")

        await self.otp.verify(user, purpose, code)

        now = datetime.now(timezone.utc)
        if purpose == "signup":
            user.is_verified = True
        user.last_login_at = now
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def resend_otp(self, email: str, purpose: str) -> None:
        """Send a new code. Silently does nothing for unknown emails."""
        user = await self.get_user_by_email(email)
        if not user or user.is_blocked:
            return
        if purpose == "signup" and user.is_verified:
            return
        await self._send_otp(user, purpose)

    async def create_tokens(self, user: User) -> Tuple[str, str, int]:
        """
        Create access and refresh tokens for a user.

        Returns:
            Tuple of (access_token, refresh_token, expires_in_seconds)
        """
        plan = await PlanService(self.db).get_current_plan(user.id)
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            is_admin=user.is_admin,
            plan_id=plan.id,
        )
        return access_token, create_refresh_token(user.id), get_token_expiry_seconds()

    async def refresh_tokens(
        self, refresh_token: str
    ) -> Optional[Tuple[str, str, int]]:
        """Generate new tokens from a refresh token."""
        payload = verify_token(refresh_token, "refresh")
        if not payload:
            return None

        user = await self.get_user_by_id(UUID(payload["sub"]))
        if not user or not user.is_active or user.is_blocked:
            return None

        return await self.create_tokens(user)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address (case-insensitive)."""
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        return await self.db.get(User, user_id)

    async def change_password(
        self, user: User, current_password: str, new_password: str
    ) -> bool:
        """
        Change user's password.

        Returns:
            True if changed, False if current password wrong
        """
        if not check_password(current_password, user.password_hash):
            return False

        user.password_hash = hash_password(new_password)
        await self.db.commit()
        return True
