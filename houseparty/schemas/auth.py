import re
from typing import Optional

from pydantic import AliasChoices, EmailStr, Field, field_validator

from houseparty.models.otp import OtpPurpose
from houseparty.schemas.common import CamelModel, Envelope
from houseparty.schemas.user import UserResponse

PHONE_RE = re.compile(r"^\+?[0-9]{6,15}$")


class UserRegister(CamelModel):
    username: str = Field(
        min_length=3, max_length=30, validation_alias=AliasChoices("handle", "username")
    )
    email: EmailStr
    phone: str
    password: str = Field(min_length=6)

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        v = re.sub(r"[\s\-()]", "", v)
        if not PHONE_RE.match(v):
            raise ValueError("phone must be 6-15 digits, optionally prefixed with +")
        return v


class UserLogin(CamelModel):
    email: EmailStr
    password: str


class VerifyEmail(CamelModel):
    email: EmailStr
    otp: str


class ResendOtp(CamelModel):
    email: EmailStr
    type: OtpPurpose = OtpPurpose.email_verification


class ForgotPassword(CamelModel):
    email: EmailStr


class ResetPassword(CamelModel):
    email: EmailStr
    otp: str
    new_password: str = Field(min_length=6)


class ChangePassword(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


class VerifyPhone(CamelModel):
    otp: str


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class TokenPairResponse(Envelope):
    access_token: str
    refresh_token: str


class AuthResponse(TokenPairResponse):
    user: UserResponse
    message: Optional[str] = None
