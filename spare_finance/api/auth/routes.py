"""
Authentication Routes

API endpoints for registration, two-step login and token refresh.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from spare_finance.api.db.session import get_db
from spare_finance.api.auth.service import AuthError, AuthService
from spare_finance.api.auth.schemas import (
    UserRegisterRequest,
    UserLoginRequest,
    OTPVerifyRequest,
    OTPResendRequest,
    LoginResponse,
    RefreshTokenRequest,
    AuthResponse,
    TokenResponse,
    UserResponse,
    MessageResponse,
)
from spare_finance.api.services.email import EmailSender, get_email_sender


router = APIRouter()


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    email_sender: EmailSender = Depends(get_email_sender),
) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db, email_sender)


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    data: UserRegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """
    Register a new user account.

    A verification code is emailed; confirm it with `/verify-otp` and
    `type=signup` before logging in.
    """
    try:
        user = await auth_service.register(data)
        return UserResponse.model_validate(user)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Check credentials and send a login code",
)
async def login(
    data: UserLoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """
    Validate email and password, then email a 6-digit code.

    Tokens are issued by `/verify-otp`.
    """
    try:
        user = await auth_service.start_login(data.email, data.password)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return LoginResponse(email=user.email)


@router.post(
    "/verify-otp",
    response_model=AuthResponse,
    summary="Verify a signup or login code",
)
async def verify_otp(
    data: OTPVerifyRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a valid code for access and refresh tokens."""
    try:
        user = await auth_service.verify_otp(data.email, data.code, data.type)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    access_token, refresh_token, expires_in = await auth_service.create_tokens(user)

    return AuthResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/resend-otp",
    response_model=MessageResponse,
    summary="Send a new code",
)
async def resend_otp(
    data: OTPResendRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Always succeeds so the endpoint does not reveal which emails exist."""
    await auth_service.resend_otp(data.email, data.type)
    return MessageResponse(message="If the account exists, a new code has been sent")


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
)
async def refresh(
    data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Get a new access token using a refresh token."""
    result = await auth_service.refresh_tokens(data.refresh_token)

    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token, refresh_token, expires_in = result

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout (client-side)",
)
async def logout() -> MessageResponse:
    """Tokens are stateless; the client discards them."""
    return MessageResponse(message="Successfully logged out")
