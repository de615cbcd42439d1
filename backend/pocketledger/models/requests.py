import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool

EntryType = Literal["income", "expense"]


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str
    password: str
    full_name: str
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    phone: str | None = None
    date_of_birth: datetime.date | None = None
    location: str | None = None
    website: str | None = None
    preferences: dict[str, Any] | None = None


class ProfileUpdateRequest(BaseModel):
    # Unknown keys, is_staff included, are dropped here.
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    full_name: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    bio: str | None = None
    phone: str | None = None
    date_of_birth: datetime.date | None = None
    location: str | None = None
    website: str | None = None
    preferences: dict[str, Any] | None = None
    is_active: StrictBool | None = None
    is_verified: StrictBool | None = None


class AdminActionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: str | None = None
    target_user_id: str | None = None
    is_staff: StrictBool | None = None


class CategoryCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: EntryType
    color: str | None = None
    icon: str | None = None


class CategoryUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    type: EntryType | None = None
    color: str | None = None
    icon: str | None = None


class TransactionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: EntryType
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    description: str = Field(min_length=1)
    date: datetime.date | None = None
    category_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    is_paid: StrictBool = False


class TransactionUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: EntryType | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    description: str | None = None
    date: datetime.date | None = None
    category_id: str | None = None
    tags: list[str] | None = None
    notes: str | None = None
    is_paid: StrictBool | None = None
