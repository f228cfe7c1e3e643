"""
Tourbook API: Tour Service
==========================

What:  Tour CRUD on the generic factory plus the tour-specific reads:
       top-5-cheap alias, statistics, monthly plan and geospatial queries.
How:   Writes go through TourCreate / TourUpdate, which never contain the
       rating fields. Aggregations always start by hiding secret tours.

Geospatial notes:
    `latlng` arrives as "lat,lng" but GeoJSON stores [lng, lat].
    $centerSphere wants a radius in radians: distance / earth radius
    (3963.2 mi or 6378.1 km). $geoNear returns metres.
"""

import logging
from datetime import MAXYEAR, MINYEAR, datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import USERS, translate_store_errors
from tourbook.exceptions import ValidationError
from tourbook.models.base import parse_object_id
from tourbook.models.tour import (
    DEFAULT_RATINGS_AVERAGE,
    DEFAULT_RATINGS_QUANTITY,
    TOUR,
    TourCreate,
    TourUpdate,
)
from tourbook.services.factory import Populate, ResourceService
from tourbook.services.review_service import ReviewService, review_service

logger = logging.getLogger(__name__)

TOUR_GUIDES = Populate(
    field="guides",
    collection=USERS,
    projection={"name": 1, "email": 1, "photo": 1, "role": 1},
)

TOP_CHEAP_ALIAS = {
    "limit": "5",
    "sort": "-ratingsAverage,price",
    "fields": "name,price,ratingsAverage,summary,difficulty",
}

EARTH_RADIUS = {"mi": 3963.2, "km": 6378.1}
METERS_TO_UNIT = {"mi": 0.000621371, "km": 0.001}

SECRET_TOURS_HIDDEN = {"$match": {"secretTour": {"$ne": True}}}


def apply_top_cheap_alias(params: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Overrides limit / sort / fields; other filters from the client stay."""
    kept = [(k, v) for k, v in params if k not in TOP_CHEAP_ALIAS]
    return kept + list(TOP_CHEAP_ALIAS.items())


def parse_latlng(latlng: str) -> Tuple[float, float]:
    lat, sep, lng = latlng.partition(",")
    try:
        if not sep:
            raise ValueError(latlng)
        return float(lat), float(lng)
    except ValueError:
        raise ValidationError(
            message="Please provide latitude and longitude in the format lat,lng.",
            field="latlng",
        )


def check_unit(unit: str) -> str:
    if unit not in EARTH_RADIUS:
        raise ValidationError(message="Unit must be either 'mi' or 'km'.", field="unit")
    return unit


class TourService(ResourceService):
    def __init__(self, reviews: ReviewService = review_service):
        super().__init__(TOUR, refs=[TOUR_GUIDES])
        self.reviews = reviews

    # ── CRUD ──────────────────────────────────────────────────────────────

    @staticmethod
    def _references(data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("guides") is not None:
            data["guides"] = [parse_object_id(g, "guides") for g in data["guides"]]
        return data

    async def create_tour(self, db: AsyncDatabase, body: TourCreate) -> Dict[str, Any]:
        data = self._references(body.model_dump(exclude_none=True))
        data["ratingsAverage"] = DEFAULT_RATINGS_AVERAGE
        data["ratingsQuantity"] = DEFAULT_RATINGS_QUANTITY
        return await self.create_one(db, data)

    async def update_tour(self, db: AsyncDatabase, tour_id: str, body: TourUpdate) -> Dict[str, Any]:
        changes = self._references(body.model_dump(exclude_unset=True, exclude_none=True))
        return await self.update_one(db, tour_id, changes)

    async def get_tour(self, db: AsyncDatabase, tour_id: str) -> Dict[str, Any]:
        """Single tour with guides and its reviews (reverse populate)."""
        tour = await self.get_one(db, tour_id)
        reviews, _ = await self.reviews.get_all(
            db, [], pre_filter={"tour": parse_object_id(tour_id)}
        )
        tour["reviews"] = reviews
        return tour

    async def delete_tour(self, db: AsyncDatabase, tour_id: str) -> None:
        await self.delete_one(db, tour_id)

    # ── Aggregations ──────────────────────────────────────────────────────

    async def _aggregate(self, db: AsyncDatabase, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        with translate_store_errors(self.resource.name):
            cursor = await self.collection(db).aggregate([SECRET_TOURS_HIDDEN, *pipeline])
            return await cursor.to_list(length=None)

    async def tour_stats(self, db: AsyncDatabase) -> List[Dict[str, Any]]:
        return await self._aggregate(db, [
            {"$match": {"ratingsAverage": {"$gte": 4.5}}},
            {
                "$group": {
                    "_id": {"$toUpper": "$difficulty"},
                    "numTours": {"$sum": 1},
                    "numRatings": {"$sum": "$ratingsQuantity"},
                    "avgRating": {"$avg": "$ratingsAverage"},
                    "avgPrice": {"$avg": "$price"},
                    "minPrice": {"$min": "$price"},
                    "maxPrice": {"$max": "$price"},
                }
            },
            {"$sort": {"avgPrice": 1}},
        ])

    async def monthly_plan(self, db: AsyncDatabase, year: int) -> List[Dict[str, Any]]:
        if not MINYEAR <= year <= MAXYEAR:
            raise ValidationError(message=f"Invalid year: {year}.", field="year")
        start = datetime(year, 1, 1, tzinfo=timezone.utc)
        end = datetime(year, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
        return await self._aggregate(db, [
            {"$unwind": "$startDates"},
            {"$match": {"startDates": {"$gte": start, "$lte": end}}},
            {
                "$group": {
                    "_id": {"$month": "$startDates"},
                    "numTourStarts": {"$sum": 1},
                    "tours": {"$push": "$name"},
                }
            },
            {"$addFields": {"month": "$_id"}},
            {"$project": {"_id": 0}},
            {"$sort": {"numTourStarts": -1}},
            {"$limit": 12},
        ])

    async def tours_within(
        self, db: AsyncDatabase, distance: float, latlng: str, unit: str
    ) -> List[Dict[str, Any]]:
        lat, lng = parse_latlng(latlng)
        radius = distance / EARTH_RADIUS[check_unit(unit)]
        with translate_store_errors(self.resource.name):
            cursor = self.collection(db).find(
                {
                    "startLocation": {"$geoWithin": {"$centerSphere": [[lng, lat], radius]}},
                    **self.resource.default_filter,
                },
                self._projection(),
            )
            docs = await cursor.to_list(length=None)
        return [self.present(d) for d in docs]

    async def distances(self, db: AsyncDatabase, latlng: str, unit: str) -> List[Dict[str, Any]]:
        lat, lng = parse_latlng(latlng)
        multiplier = METERS_TO_UNIT[check_unit(unit)]
        # $geoNear must be the first stage, so the secret filter goes in its query
        pipeline = [
            {
                "$geoNear": {
                    "near": {"type": "Point", "coordinates": [lng, lat]},
                    "distanceField": "distance",
                    "distanceMultiplier": multiplier,
                    "query": dict(self.resource.default_filter),
                }
            },
            {"$project": {"distance": 1, "name": 1}},
        ]
        with translate_store_errors(self.resource.name):
            cursor = await self.collection(db).aggregate(pipeline)
            docs = await cursor.to_list(length=None)
        return [self.present(d) for d in docs]


tour_service = TourService()
