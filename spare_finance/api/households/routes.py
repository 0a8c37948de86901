"""
Household Routes

Households, members and invitations.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.db.models import Household, HouseholdMember, User
from spare_finance.api.dependencies import get_current_user
from spare_finance.api.auth.schemas import MessageResponse
from spare_finance.api.households.service import HouseholdService
from spare_finance.api.households.schemas import (
    HouseholdCreateRequest,
    HouseholdResponse,
    InvitationResponse,
    InvitationTokenRequest,
    MemberInviteRequest,
    MemberResponse,
    MemberRoleUpdateRequest,
)
from spare_finance.api.services.email import EmailSender, get_email_sender


router = APIRouter()


def get_household_service(db: AsyncSession = Depends(get_db)) -> HouseholdService:
    return HouseholdService(db)


async def get_household_with_access(
    household_id: UUID,
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> Household:
    """Household the current user is an active member of."""
    household = await service.get_household(household_id)
    if not household:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Household not found")
    if not await service.get_membership(household.id, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this household",
        )
    return household


async def get_member_in_household(
    member_id: UUID,
    household: Household = Depends(get_household_with_access),
    service: HouseholdService = Depends(get_household_service),
) -> HouseholdMember:
    member = await service.get_member(member_id)
    if not member or member.household_id != household.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


def _raise_for(e: Exception):
    if isinstance(e, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=List[HouseholdResponse], summary="List my households")
async def list_households(
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> List[HouseholdResponse]:
    households = await service.list_households(user.id)
    return [HouseholdResponse.model_validate(h) for h in households]


@router.post(
    "",
    response_model=HouseholdResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a household",
)
async def create_household(
    data: HouseholdCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: HouseholdService = Depends(get_household_service),
) -> HouseholdResponse:
    household = await service.create_household(user, data.name, data.type)
    await db.commit()
    household = await service.get_household(household.id)
    return HouseholdResponse.model_validate(household)


@router.get("/{household_id}", response_model=HouseholdResponse, summary="Get household")
async def get_household(
    household: Household = Depends(get_household_with_access),
) -> HouseholdResponse:
    return HouseholdResponse.model_validate(household)


@router.post(
    "/{household_id}/members",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a member",
)
async def invite_member(
    data: MemberInviteRequest,
    household: Household = Depends(get_household_with_access),
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
    email_sender: EmailSender = Depends(get_email_sender),
) -> InvitationResponse:
    """
    Invite by email. Existing users join immediately; others receive a
    token to accept after signing up.
    """
    try:
        member = await service.invite_member(
            household, user, data.email, role=data.role, name=data.name
        )
    except (PermissionError, ValueError) as e:
        _raise_for(e)

    if member.status == "pending":
        await email_sender.send_invitation(
            member.email, household.name, member.invitation_token, user.full_name or user.email
        )
    return InvitationResponse.model_validate(member)


@router.patch(
    "/{household_id}/members/{member_id}",
    response_model=MemberResponse,
    summary="Change a member's role",
)
async def update_member_role(
    data: MemberRoleUpdateRequest,
    member: HouseholdMember = Depends(get_member_in_household),
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> MemberResponse:
    try:
        member = await service.update_member_role(member, user, data.role)
    except (PermissionError, ValueError) as e:
        _raise_for(e)
    return MemberResponse.model_validate(member)


@router.delete(
    "/{household_id}/members/{member_id}",
    response_model=MessageResponse,
    summary="Remove a member",
)
async def remove_member(
    member: HouseholdMember = Depends(get_member_in_household),
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> MessageResponse:
    try:
        await service.remove_member(member, user)
    except (PermissionError, ValueError) as e:
        _raise_for(e)
    return MessageResponse(message="Member removed")


@router.post(
    "/{household_id}/members/{member_id}/resend",
    response_model=InvitationResponse,
    summary="Resend an invitation",
)
async def resend_invitation(
    member: HouseholdMember = Depends(get_member_in_household),
    household: Household = Depends(get_household_with_access),
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
    email_sender: EmailSender = Depends(get_email_sender),
) -> InvitationResponse:
    try:
        member = await service.resend_invitation(member, user)
    except (PermissionError, ValueError) as e:
        _raise_for(e)
    await email_sender.send_invitation(
        member.email, household.name, member.invitation_token, user.full_name or user.email
    )
    return InvitationResponse.model_validate(member)


@router.post(
    "/invitations/accept",
    response_model=MemberResponse,
    summary="Accept an invitation",
)
async def accept_invitation(
    data: InvitationTokenRequest,
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> MemberResponse:
    try:
        member = await service.accept_invitation(data.token, user)
    except ValueError as e:
        _raise_for(e)
    return MemberResponse.model_validate(member)


@router.post(
    "/invitations/decline",
    response_model=MemberResponse,
    summary="Decline an invitation",
)
async def decline_invitation(
    data: InvitationTokenRequest,
    user: User = Depends(get_current_user),
    service: HouseholdService = Depends(get_household_service),
) -> MemberResponse:
    try:
        member = await service.decline_invitation(data.token, user)
    except ValueError as e:
        _raise_for(e)
    return MemberResponse.model_validate(member)
