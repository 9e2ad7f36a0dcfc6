"""Auth & User Schemas - registration, login, profile updates and user views.

Invariants:
    - username: 3-30 chars of [A-Za-z0-9_.-], stripped
    - email: stripped, lower-cased, validated as EmailStr
    - password: >= 6 chars; never echoed back in any response
    - Changing password requires current_password
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from storefront.core.domain_types import UserRole

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]{3,30}$"


def _normalize_email(v):
    return v.strip().lower() if isinstance(v, str) else v


class RegisterRequest(BaseModel):
    username: str = Field(pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: str = Field("", max_length=120)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class UserResponse(BaseModel):
    """Public view of the authenticated user."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: str
    name: str
    role: UserRole
    member_number: int | None = None
    profile_image: str = ""
    cpf: str = ""
    phone: str = ""
    address: str = ""
    created_at: datetime


class UsernameAvailability(BaseModel):
    username: str
    available: bool


class ProfileUpdate(BaseModel):
    name: str | None = Field(None, max_length=120)
    cpf: str | None = Field(None, max_length=20)
    phone: str | None = Field(None, max_length=30)
    address: str | None = Field(None, max_length=500)
    profile_image: str | None = Field(None, max_length=500)
    current_password: str | None = None
    new_password: str | None = Field(None, min_length=6, max_length=128)

    @model_validator(mode="after")
    def password_change_needs_current(self):
        if self.new_password and not self.current_password:
            raise ValueError("current_password is required to change the password")
        return self


class AdminUserUpdate(BaseModel):
    role: UserRole | None = None
    name: str | None = Field(None, max_length=120)
    email: EmailStr | None = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return _normalize_email(v)


class AdminUserDetail(UserResponse):
    owned_products: list[str] = []
    updated_at: datetime
