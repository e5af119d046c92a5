from pydantic import BaseModel, EmailStr, Field, field_validator, ValidationInfo
from typing import Optional

MIN_PASSWORD_LENGTH = 6


def _check_confirmation(v: str, info: ValidationInfo, field: str) -> str:
    if field in info.data and v != info.data[field]:
        raise ValueError("Les mots de passe ne correspondent pas")
    return v


class UserRegister(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=80)
    last_name: str = Field(..., min_length=1, max_length=80)
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    password_confirm: str

    @field_validator("password_confirm")
    @classmethod
    def passwords_match(cls, v, info: ValidationInfo):
        return _check_confirmation(v, info, "password")


class UserLogin(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_required(cls, v):
        if not v or v.strip() == "":
            raise ValueError("Mot de passe requis")
        return v


class GoogleLoginRequest(BaseModel):
    id_token: str = Field(..., min_length=10)


class RefreshRequest(BaseModel):
    refresh_token: str


class FirstLoginPasswordRequest(BaseModel):
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v, info: ValidationInfo):
        return _check_confirmation(v, info, "new_password")


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class DeviceTokenRequest(BaseModel):
    device_token: str = Field(..., min_length=1)
