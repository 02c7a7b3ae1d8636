from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from schoolcrm.domains.users.roles import canonicalize, parse_role


def _validate_role(value: str | None) -> str | None:
    if value is None:
        return None
    role = parse_role(value)
    if role is None or canonicalize(role) is None:
        raise ValueError(f"Unknown role '{value}'")
    return role.value


class UserBase(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)


class UserCreate(UserBase):
    password: str = Field(min_length=8)
    role: str | None = None
    extra_roles: list[str] = []

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str | None) -> str | None:
        return _validate_role(value)

    @field_validator("extra_roles")
    @classmethod
    def validate_extra_roles(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(_validate_role(v) for v in value))


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    role: str | None = None
    extra_roles: list[str] | None = None
    password: str | None = Field(default=None, min_length=8)

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: str | None) -> str | None:
        return _validate_role(value)

    @field_validator("extra_roles")
    @classmethod
    def validate_extra_roles(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return list(dict.fromkeys(_validate_role(v) for v in value))


class UserResponse(UserBase):
    id: UUID
    role: str | None
    roles: list[str]
    role_label: str | None
    is_archived: bool
    last_seen: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


# Group schemas
class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class GroupResponse(BaseModel):
    id: UUID
    name: str
    member_count: int = 0
    created_at: datetime

    class Config:
        from_attributes = True


class GroupMembersUpdate(BaseModel):
    user_ids: list[UUID] = Field(min_length=1)


class GroupMemberResponse(BaseModel):
    user_id: UUID
    username: str
    name: str
    role: str | None
