import re
from datetime import date, datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, StringConstraints, field_validator

Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=50, pattern=r'^[A-Za-z0-9_]+$')]
FullName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]

_PASSWORD_RULE = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)')


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not _PASSWORD_RULE.match(value):
        raise ValueError('Password must contain at least one uppercase letter, one lowercase letter, and one number')
    return value


class RegisterIn(BaseModel):
    username: Username
    email: EmailStr
    password: str
    full_name: Optional[FullName] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @field_validator('password')
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str = Field(min_length=1)
    new_password: str

    @field_validator('new_password')
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: EmailStr
    role: str
    full_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    gender: Optional[str] = None
    privacy: str = 'public'
    birthday: Optional[date] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserPublic(BaseModel):
    """Profile fields visible to other users."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    avatar_url: Optional[str] = None
    privacy: str = 'public'
    created_at: Optional[datetime] = None


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ProfileUpdateIn(BaseModel):
    full_name: Optional[FullName] = None
    bio: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None
    location: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=100)]] = None
    website: Optional[HttpUrl] = None
    gender: Optional[Literal['male', 'female', 'other', 'prefer_not_to_say']] = None
    privacy: Optional[Literal['public', 'friends', 'private']] = None
    birthday: Optional[date] = None
