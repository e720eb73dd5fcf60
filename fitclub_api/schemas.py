"""
Pydantic schemas for the FitClub API.

Wire names are camelCase (`avatarUrl`, `ownerId`) and record ids travel as
`_id`, matching what the web client reads.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from fitclub_shared.types import AccountProvider, AccountStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(ApiModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=72)
    provider: AccountProvider = AccountProvider.CREDENTIALS


class LoginRequest(ApiModel):
    email: str = ""
    password: str = ""


class AccountStatusRequest(ApiModel):
    status: AccountStatus


class AccountOut(ApiModel):
    id: str = Field(..., alias="_id")
    email: str
    provider: AccountProvider
    status: AccountStatus


class AccountResponse(ApiModel):
    account: AccountOut


class LoginResponse(ApiModel):
    account: AccountOut
    token: str
    token_type: Literal["bearer"] = "bearer"


class _Measurement(ApiModel):
    value: Optional[float] = None

    @field_validator("value", mode="before")
    @classmethod
    def _blank_is_missing(cls, value):
        # Form inputs send "" for an empty measurement.
        if value == "":
            return None
        return value


class Height(_Measurement):
    unit: Literal["cm"] = "cm"


class Weight(_Measurement):
    unit: Literal["kg"] = "kg"


class UserPayload(ApiModel):
    """Create/update body. Any `_id` sent by the client is ignored."""

    name: Optional[str] = None
    age: Optional[int] = None
    sex: Optional[str] = None
    height: Optional[Height] = None
    weight: Optional[Weight] = None
    account_id: Optional[str] = None


class UserOut(ApiModel):
    id: str = Field(..., alias="_id")
    name: str
    age: int
    sex: str
    height: Optional[Height] = None
    weight: Optional[Weight] = None
    avatar_url: Optional[str] = None
    account_id: Optional[str] = None


class BasicUserOut(ApiModel):
    id: str = Field(..., alias="_id")
    name: str
    avatar_url: Optional[str] = None


class UserResponse(ApiModel):
    user: UserOut


class BasicUserResponse(ApiModel):
    user: BasicUserOut


class UsersResponse(ApiModel):
    users: list[BasicUserOut]


class GroupOut(ApiModel):
    id: str = Field(..., alias="_id")
    name: str
    visibility: str
    owner_id: Optional[str] = None
    members: list[str] = Field(default_factory=list)
    invited: list[str] = Field(default_factory=list)
    photo_url: Optional[str] = None


class GroupResponse(ApiModel):
    group: GroupOut


class GroupsResponse(ApiModel):
    groups: list[GroupOut]


class MemberRequest(ApiModel):
    user_id: str = ""


class InviteMembersRequest(ApiModel):
    members: list[str] = Field(default_factory=list)


class SuccessResponse(ApiModel):
    success: bool
