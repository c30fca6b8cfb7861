# tenant_auth/schemas/user.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserPublic(CamelModel):
    id: int
    tenant_id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_active: bool = True
    email_verified: bool = False
    two_factor_enabled: bool = False
    menu_expanded: bool = False
    last_login_at: Optional[datetime] = None


class UserEnvelope(CamelModel):
    user: UserPublic


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    confirm_password: Optional[str] = None


class UpdateProfileRequest(CamelModel):
    first_name: str = Field(min_length=1, max_length=120)
    last_name: str = Field(min_length=1, max_length=120)
    email: EmailStr


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str
    confirm_password: Optional[str] = None


class MenuPreferenceRequest(CamelModel):
    menu_expanded: StrictBool


class MenuPreferenceOut(CamelModel):
    message: str = "Menu preference updated successfully"
    menu_expanded: bool
