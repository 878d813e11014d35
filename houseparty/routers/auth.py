from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from houseparty.database import get_db
from houseparty.dependencies import Principal, get_current_principal, get_token_service
from houseparty.schemas.auth import (
    AuthResponse,
    ChangePassword,
    ForgotPassword,
    RefreshTokenRequest,
    ResendOtp,
    ResetPassword,
    TokenPairResponse,
    UserLogin,
    UserRegister,
    VerifyEmail,
    VerifyPhone,
)
from houseparty.schemas.common import MessageResponse
from houseparty.schemas.user import UserEnvelope, UserResponse
from houseparty.services import auth_service
from houseparty.services.token_service import TokenService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(body: UserRegister, db: AsyncSession = Depends(get_db)):
    user = await auth_service.register_user(
        db, username=body.username, email=str(body.email), phone=body.phone, password=body.password
    )
    return UserEnvelope(
        user=UserResponse.model_validate(user),
        message="User registered successfully. Please verify your email.",
    )


@router.post("/verify-email", response_model=AuthResponse)
async def verify_email(
    body: VerifyEmail,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user, pair = await auth_service.verify_email(db, tokens, email=str(body.email), code=body.otp)
    return AuthResponse(
        message="Email verified successfully",
        user=UserResponse.model_validate(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/resend-otp", response_model=MessageResponse)
async def resend_otp(body: ResendOtp, db: AsyncSession = Depends(get_db)):
    await auth_service.resend_otp(db, email=str(body.email), purpose=body.type)
    return MessageResponse(message="OTP sent successfully")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: UserLogin,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user, pair = await auth_service.login(db, tokens, email=str(body.email), password=body.password)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/refresh-token", response_model=TokenPairResponse)
async def refresh_token(
    body: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    pair = await auth_service.refresh_tokens(db, tokens, body.refresh_token)
    return TokenPairResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(body: ForgotPassword, db: AsyncSession = Depends(get_db)):
    await auth_service.forgot_password(db, email=str(body.email))
    return MessageResponse(message="Password reset OTP sent successfully")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(body: ResetPassword, db: AsyncSession = Depends(get_db)):
    await auth_service.reset_password(
        db, email=str(body.email), code=body.otp, new_password=body.new_password
    )
    return MessageResponse(message="Password reset successfully")


@router.get("/me", response_model=UserEnvelope)
async def me(principal: Principal = Depends(get_current_principal)):
    return UserEnvelope(user=UserResponse.model_validate(principal.user))


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePassword,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await auth_service.change_password(
        db, principal.user, current_password=body.current_password, new_password=body.new_password
    )
    return MessageResponse(message="Password changed successfully")


@router.post("/verify-phone", response_model=UserEnvelope)
async def verify_phone(
    body: VerifyPhone,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    user = await auth_service.verify_phone(db, principal.user, code=body.otp)
    return UserEnvelope(user=UserResponse.model_validate(user), message="Phone verified successfully")
