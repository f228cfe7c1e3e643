"""
Review document model.

At most one review per (tour, user); the unique compound index declared in
database.py enforces it.
"""

from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from tourbook.database import REVIEWS
from tourbook.models.base import Resource, casts_for


class ReviewCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    review: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    # Stamped from the URL and the authenticated user when absent
    tour: Optional[str] = None
    user: Optional[str] = None


class ReviewUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    review: Optional[str] = Field(default=None, min_length=1)
    rating: Optional[int] = Field(default=None, ge=1, le=5)


REVIEW = Resource(
    name="review",
    collection=REVIEWS,
    casts=casts_for(ReviewCreate, tour=ObjectId, user=ObjectId),
)
