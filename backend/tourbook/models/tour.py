"""
Tour document model.

Rating fields (`ratingsAverage`, `ratingsQuantity`) are derived from reviews
and therefore absent from both write models; the review aggregation routine
is their only writer.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, model_validator

from tourbook.database import TOURS
from tourbook.models.base import Resource, casts_for

Difficulty = Literal["easy", "medium", "difficult"]

DEFAULT_RATINGS_AVERAGE = 4.5
DEFAULT_RATINGS_QUANTITY = 0


class GeoPoint(BaseModel):
    """GeoJSON point; coordinates are [longitude, latitude]."""

    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)
    address: Optional[str] = None
    description: Optional[str] = None


class Location(GeoPoint):
    day: Optional[int] = Field(default=None, ge=0)


class TourCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=10, max_length=40)
    duration: int = Field(gt=0)
    maxGroupSize: int = Field(gt=0)
    difficulty: Difficulty
    price: float = Field(gt=0)
    priceDiscount: Optional[float] = Field(default=None, ge=0)
    summary: str = Field(min_length=1)
    description: Optional[str] = None
    imageCover: str = Field(min_length=1)
    images: List[str] = Field(default_factory=list)
    startDates: List[datetime] = Field(default_factory=list)
    secretTour: bool = False
    startLocation: Optional[GeoPoint] = None
    locations: List[Location] = Field(default_factory=list)
    guides: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def discount_below_price(self) -> "TourCreate":
        if self.priceDiscount is not None and self.priceDiscount >= self.price:
            raise ValueError(f"Discount price ({self.priceDiscount}) should be below regular price")
        return self


class TourUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=10, max_length=40)
    duration: Optional[int] = Field(default=None, gt=0)
    maxGroupSize: Optional[int] = Field(default=None, gt=0)
    difficulty: Optional[Difficulty] = None
    price: Optional[float] = Field(default=None, gt=0)
    priceDiscount: Optional[float] = Field(default=None, ge=0)
    summary: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    imageCover: Optional[str] = Field(default=None, min_length=1)
    images: Optional[List[str]] = None
    startDates: Optional[List[datetime]] = None
    secretTour: Optional[bool] = None
    startLocation: Optional[GeoPoint] = None
    locations: Optional[List[Location]] = None
    guides: Optional[List[str]] = None

    @model_validator(mode="after")
    def discount_below_price(self) -> "TourUpdate":
        # Only checkable when both arrive in the same update
        if (
            self.priceDiscount is not None
            and self.price is not None
            and self.priceDiscount >= self.price
        ):
            raise ValueError(f"Discount price ({self.priceDiscount}) should be below regular price")
        return self


def add_virtuals(tour: Dict[str, Any]) -> Dict[str, Any]:
    """Read-time fields; never persisted."""
    duration = tour.get("duration")
    if isinstance(duration, (int, float)):
        tour["durationWeeks"] = duration / 7
    return tour


TOUR = Resource(
    name="tour",
    collection=TOURS,
    casts=casts_for(
        TourCreate,
        ratingsAverage=float,
        ratingsQuantity=int,
        guides=ObjectId,
    ),
    default_filter={"secretTour": {"$ne": True}},
    computed=add_virtuals,
)
