"""
User document model.

The stored `password` is always a bcrypt hash. It and the reset-token fields
are hidden from every default projection; the auth service asks for them
explicitly when it needs to compare.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from tourbook.database import USERS
from tourbook.models.base import Resource, casts_for

Role = Literal["user", "guide", "lead-guide", "admin"]

ROLE_USER = "user"
ROLE_GUIDE = "guide"
ROLE_LEAD_GUIDE = "lead-guide"
ROLE_ADMIN = "admin"

DEFAULT_PHOTO = "default.jpg"

SECRET_FIELDS = frozenset(
    {"password", "passwordResetToken", "passwordResetExpires", "active"}
)


class UserDocument(BaseModel):
    """Shape of a stored user; used for filter casting and documentation."""

    name: str
    email: EmailStr
    photo: str = DEFAULT_PHOTO
    role: Role = ROLE_USER
    password: str
    passwordChangedAt: Optional[datetime] = None
    passwordResetToken: Optional[str] = None
    passwordResetExpires: Optional[datetime] = None
    active: bool = True


class UserUpdate(BaseModel):
    """Admin update. Passwords are never changed through this model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None
    photo: Optional[str] = None
    role: Optional[Role] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


USER = Resource(
    name="user",
    collection=USERS,
    casts=casts_for(UserDocument),
    default_filter={"active": {"$ne": False}},
    hidden_fields=SECRET_FIELDS,
)
