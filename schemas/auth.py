from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Preferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    notifications: bool = True
    newsletter: bool = False
    dark_mode: bool = Field(default=True, alias="darkMode")


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    email: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")
    phone: Optional[str] = None
    country: Optional[str] = None


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    phone: Optional[str] = None
    country: Optional[str] = None
    preferences: Optional[Preferences] = None


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(default="", alias="currentPassword")
    new_password: str = Field(default="", alias="newPassword")
    confirm_password: str = Field(default="", alias="confirmNewPassword")


class AccountDelete(BaseModel):
    password: str = ""


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    country: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    preferences: dict = Field(default_factory=dict)


class AuthResponse(BaseModel):
    success: bool = True
    message: str
    user: UserOut
    token: str
