"""
Tourbook API: Review Service
============================

What:  Review CRUD plus the rating aggregation that keeps each tour's
       `ratingsAverage` / `ratingsQuantity` a function of its current reviews.
How:   Wraps the generic ResourceService. Every create, update and delete
       ends with `recalculate_tour_ratings(tour_id)`.

Consistency:
    The recompute runs after the triggering write and outside any
    transaction. If the process dies in between, the aggregate stays stale
    until the next review write for that tour. The recompute reads the
    current reviews only, so running it again always heals the tour.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import TOURS, USERS
from tourbook.exceptions import NotFound
from tourbook.models.base import parse_object_id
from tourbook.models.review import REVIEW, ReviewCreate, ReviewUpdate
from tourbook.models.tour import DEFAULT_RATINGS_AVERAGE, DEFAULT_RATINGS_QUANTITY, TOUR
from tourbook.services.factory import Populate, ResourceService, populate

logger = logging.getLogger(__name__)

REVIEW_AUTHOR = Populate(field="user", collection=USERS, projection={"name": 1, "photo": 1})


def round_rating(value: float) -> float:
    """One decimal, halves rounded up: 4.25 → 4.3."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class ReviewService(ResourceService):
    def __init__(self):
        super().__init__(REVIEW, refs=[REVIEW_AUTHOR])

    # ── Aggregation ───────────────────────────────────────────────────────

    async def calculate_ratings(self, db: AsyncDatabase, tour_id: ObjectId) -> Tuple[int, float]:
        """(count, average) over the tour's current reviews; defaults when none."""
        pipeline = [
            {"$match": {"tour": tour_id}},
            {
                "$group": {
                    "_id": "$tour",
                    "nRating": {"$sum": 1},
                    "avgRating": {"$avg": "$rating"},
                }
            },
        ]
        cursor = await self.collection(db).aggregate(pipeline)
        stats = await cursor.to_list(length=None)
        if not stats:
            return DEFAULT_RATINGS_QUANTITY, DEFAULT_RATINGS_AVERAGE
        return int(stats[0]["nRating"]), round_rating(stats[0]["avgRating"])

    async def recalculate_tour_ratings(self, db: AsyncDatabase, tour_id: ObjectId) -> Tuple[int, float]:
        quantity, average = await self.calculate_ratings(db, tour_id)
        await db[TOURS].update_one(
            {"_id": tour_id},
            {"$set": {"ratingsQuantity": quantity, "ratingsAverage": average}},
        )
        logger.info("Tour %s ratings: quantity=%d average=%.1f", tour_id, quantity, average)
        return quantity, average

    # ── CRUD with side effects ────────────────────────────────────────────

    async def list_reviews(
        self,
        db: AsyncDatabase,
        params: Iterable[Tuple[str, str]],
        tour_id: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        pre_filter = {"tour": parse_object_id(tour_id, "tour")} if tour_id else None
        return await self.get_all(db, params, pre_filter)

    async def create_review(
        self,
        db: AsyncDatabase,
        body: ReviewCreate,
        author_id: ObjectId,
        tour_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Creates a review, stamping the tour from the URL and the author from
        the authenticated user when the body leaves them out.
        """
        tour_ref = parse_object_id(body.tour or tour_id, "tour")
        user_ref = parse_object_id(body.user, "user") if body.user else author_id

        tour_exists = await db[TOURS].find_one({"_id": tour_ref}, {"_id": 1})
        if tour_exists is None:
            raise NotFound(resource=TOUR.name, resource_id=str(tour_ref))

        data = {"review": body.review, "rating": body.rating, "tour": tour_ref, "user": user_ref}
        review = await self.create_one(db, data)
        await self.recalculate_tour_ratings(db, tour_ref)
        return review

    async def update_review(self, db: AsyncDatabase, review_id: str, body: ReviewUpdate) -> Dict[str, Any]:
        doc = await self.update_raw(db, review_id, body.model_dump(exclude_unset=True, exclude_none=True))
        await self.recalculate_tour_ratings(db, doc["tour"])
        (doc,) = await populate(db, [doc], self.refs)
        return self.present(doc)

    async def delete_review(self, db: AsyncDatabase, review_id: str) -> None:
        doc = await self.delete_one(db, review_id)
        await self.recalculate_tour_ratings(db, doc["tour"])


review_service = ReviewService()
