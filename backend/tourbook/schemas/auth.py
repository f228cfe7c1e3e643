"""
Tourbook API: Authentication & Profile Request Schemas
======================================================

What:  Request bodies for signup, login, password flows and profile updates.
How:   FastAPI validates these before the handler runs; failures become a
       400 `fail` envelope (see main.py), so a signup whose passwordConfirm
       differs never reaches the database.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

MIN_PASSWORD_LENGTH = 8


class PasswordConfirmation(BaseModel):
    """`password` plus a `passwordConfirm` that must match it exactly."""

    password: str = Field(min_length=MIN_PASSWORD_LENGTH)
    passwordConfirm: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.passwordConfirm:
            raise ValueError("Passwords are not the same!")
        return self


class SignupRequest(PasswordConfirmation):
    """
    Public registration.

    `role` is deliberately absent: everyone signs up as a plain user and only
    an admin can promote them.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=60)
    email: EmailStr
    photo: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    # Optional so the service can answer with its own message
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(PasswordConfirmation):
    pass


class UpdatePasswordRequest(PasswordConfirmation):
    passwordCurrent: str = Field(min_length=1)


class UpdateMeRequest(BaseModel):
    """
    Self-service profile update. Only name and email are applied; the
    password fields exist so the service can reject them with a pointer to
    /update-my-password.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=60)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    passwordConfirm: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v
