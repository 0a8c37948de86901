"""
Household Service

Households group users who share financial data. Each household has
exactly one owner; admins may invite and remove members.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from spare_finance.api.db.models import Household, HouseholdMember, User

logger = logging.getLogger(__name__)

ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"
MANAGER_ROLES = (ROLE_OWNER, ROLE_ADMIN)


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)


class HouseholdService:
    """Service for household and membership operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Households ====================

    async def create_household(
        self, user: User, name: str, household_type: str = "personal"
    ) -> Household:
        """Create a household with user as its active owner."""
        household = Household(name=name, type=household_type, created_by=user.id)
        self.db.add(household)
        await self.db.flush()

        self.db.add(
            HouseholdMember(
                household_id=household.id,
                user_id=user.id,
                email=user.email,
                name=user.full_name or None,
                role=ROLE_OWNER,
                status="active",
                accepted_at=datetime.now(timezone.utc),
            )
        )
        await self.db.flush()
        return household

    async def list_households(self, user_id: UUID) -> List[Household]:
        """Households where the user is an active member."""
        result = await self.db.execute(
            select(Household)
            .join(HouseholdMember, HouseholdMember.household_id == Household.id)
            .where(
                HouseholdMember.user_id == user_id,
                HouseholdMember.status == "active",
            )
            .options(selectinload(Household.members))
            .execution_options(populate_existing=True)
            .order_by(Household.created_at)
        )
        return list(result.scalars().unique().all())

    async def get_household(self, household_id: UUID) -> Optional[Household]:
        result = await self.db.execute(
            select(Household)
            .where(Household.id == household_id)
            .options(selectinload(Household.members))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_membership(
        self, household_id: UUID, user_id: UUID
    ) -> Optional[HouseholdMember]:
        result = await self.db.execute(
            select(HouseholdMember).where(
                HouseholdMember.household_id == household_id,
                HouseholdMember.user_id == user_id,
                HouseholdMember.status == "active",
            )
        )
        return result.scalar_one_or_none()

    async def get_member(self, member_id: UUID) -> Optional[HouseholdMember]:
        return await self.db.get(HouseholdMember, member_id)

    async def require_role(
        self, household_id: UUID, user_id: UUID, roles=MANAGER_ROLES
    ) -> HouseholdMember:
        """
        Raises:
            PermissionError: If user is not an active member with one of roles
        """
        membership = await self.get_membership(household_id, user_id)
        if membership is None or membership.role not in roles:
            raise PermissionError("Insufficient household permissions")
        return membership

    # ==================== Members ====================

    async def invite_member(
        self,
        household: Household,
        inviter: User,
        email: str,
        role: str = ROLE_MEMBER,
        name: Optional[str] = None,
    ) -> HouseholdMember:
        """
        Invite someone by email.

        Existing users are linked and activated immediately; unknown emails
        stay pending until the invitation is accepted.

        Raises:
            PermissionError: Inviter is not owner/admin
            ValueError: Bad role or already a member
        """
        await self.require_role(household.id, inviter.id)

        if role == ROLE_OWNER:
            raise ValueError("Cannot invite a member as owner")

        email = email.lower()
        existing = await self.db.execute(
            select(HouseholdMember).where(
                HouseholdMember.household_id == household.id,
                func.lower(HouseholdMember.email) == email,
            )
        )
        if existing.scalar_one_or_none():
            raise ValueError("This email is already a member of the household")

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email)
        )
        invited_user = result.scalar_one_or_none()

        now = datetime.now(timezone.utc)
        member = HouseholdMember(
            household_id=household.id,
            email=email,
            name=name,
            role=role,
            invitation_token=generate_invitation_token(),
            invited_by=inviter.id,
            invited_at=now,
        )
        if invited_user is not None:
            member.user_id = invited_user.id
            member.status = "active"
            member.accepted_at = now
        else:
            member.status = "pending"

        self.db.add(member)
        await self.db.commit()
        await self.db.refresh(member)

        logger.info(
            "Invited %s to household %s (status=%s)", email, household.id, member.status
        )
        return member

    async def accept_invitation(self, token: str, user: User) -> HouseholdMember:
        """
        Raises:
            ValueError: Unknown token, email mismatch or not pending
        """
        result = await self.db.execute(
            select(HouseholdMember).where(HouseholdMember.invitation_token == token)
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise ValueError("Invitation not found")
        if member.email.lower() != user.email.lower():
            raise ValueError("Invitation was sent to a different email")
        if member.status != "pending":
            raise ValueError("Invitation is no longer pending")

        member.user_id = user.id
        member.status = "active"
        member.accepted_at = datetime.now(timezone.utc)
        member.invitation_token = None
        await self.db.commit()
        await self.db.refresh(member)
        return member

    async def decline_invitation(self, token: str, user: User) -> HouseholdMember:
        result = await self.db.execute(
            select(HouseholdMember).where(HouseholdMember.invitation_token == token)
        )
        member = result.scalar_one_or_none()
        if member is None or member.email.lower() != user.email.lower():
            raise ValueError("Invitation not found")
        member.status = "declined"
        member.invitation_token = None
        await self.db.commit()
        await self.db.refresh(member)
        return member

    async def update_member_role(
        self, member: HouseholdMember, actor: User, role: str
    ) -> HouseholdMember:
        """Only the owner changes roles; ownership cannot move this way."""
        await self.require_role(member.household_id, actor.id, roles=(ROLE_OWNER,))

        if member.role == ROLE_OWNER:
            raise ValueError("Cannot change the owner's role")
        if role == ROLE_OWNER:
            raise ValueError("Cannot assign the owner role")

        member.role = role
        await self.db.commit()
        await self.db.refresh(member)
        return member

    async def remove_member(self, member: HouseholdMember, actor: User) -> None:
        await self.require_role(member.household_id, actor.id)

        if member.role == ROLE_OWNER:
            raise ValueError("Cannot remove the household owner")

        await self.db.delete(member)
        await self.db.commit()

    async def resend_invitation(
        self, member: HouseholdMember, actor: User
    ) -> HouseholdMember:
        await self.require_role(member.household_id, actor.id)

        if member.status != "pending":
            raise ValueError("Only pending invitations can be resent")

        member.invitation_token = generate_invitation_token()
        member.invited_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(member)
        return member
