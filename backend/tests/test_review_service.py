"""
Tourbook API: Review Service Tests
==================================

What we test:
    ✅ Tour ratings follow the current set of reviews after create / update / delete
    ✅ No reviews left → quantity 0, average 4.5
    ✅ Recomputing twice without writes gives the same aggregate
    ✅ Tour and author stamped from the path and the logged-in user
    ✅ Reviewing a tour that does not exist → NotFound
    ✅ A second review of the same tour by the same user → 400, ratings untouched
    ✅ Averages round halves up

The reviews collection is backed by a list so the $match/$group pipeline
sees the writes the service made.
"""

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from tourbook.exceptions import NotFound, ValidationError
from tourbook.models.review import ReviewCreate, ReviewUpdate
from tourbook.services.review_service import ReviewService

from conftest import make_cursor


class InMemoryReviews:
    """Backs the review collection mock with a list of documents."""

    def __init__(self, collection):
        self.docs: List[Dict[str, Any]] = []
        collection.insert_one.side_effect = self.insert_one
        collection.find_one_and_delete.side_effect = self.find_one_and_delete
        collection.find_one_and_update.side_effect = self.find_one_and_update
        collection.aggregate.side_effect = self.aggregate

    async def insert_one(self, doc):
        doc = dict(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def _find(self, query):
        for doc in self.docs:
            if doc["_id"] == query["_id"]:
                return doc
        return None

    async def find_one_and_delete(self, query, *args, **kwargs):
        doc = self._find(query)
        if doc is not None:
            self.docs.remove(doc)
        return doc

    async def find_one_and_update(self, query, update, **kwargs):
        doc = self._find(query)
        if doc is not None:
            doc.update(update.get("$set", {}))
        return dict(doc) if doc else None

    async def aggregate(self, pipeline):
        tour_id = pipeline[0]["$match"]["tour"]
        ratings = [d["rating"] for d in self.docs if d["tour"] == tour_id]
        if not ratings:
            return make_cursor([])
        return make_cursor([{"_id": tour_id, "nRating": len(ratings), "avgRating": sum(ratings) / len(ratings)}])


@pytest.fixture
def service():
    return ReviewService()


@pytest.fixture
def tour_id(fake_db):
    tour = ObjectId()
    fake_db["tours"].find_one.return_value = {"_id": tour}
    return tour


@pytest.fixture
def reviews(fake_db):
    return InMemoryReviews(fake_db["reviews"])


def last_tour_ratings(fake_db) -> Dict[str, Any]:
    _, update = fake_db["tours"].update_one.await_args.args
    return update["$set"]


class TestRatingAggregation:

    @pytest.mark.asyncio
    async def test_two_reviews_then_none(self, service, fake_db, tour_id, reviews, make_user):
        first = await service.create_review(
            fake_db, ReviewCreate(review="Good", rating=4), make_user()["_id"], tour_id=str(tour_id)
        )
        second = await service.create_review(
            fake_db, ReviewCreate(review="Great", rating=5), make_user()["_id"], tour_id=str(tour_id)
        )
        assert last_tour_ratings(fake_db) == {"ratingsQuantity": 2, "ratingsAverage": 4.5}

        await service.delete_review(fake_db, first["id"])
        assert last_tour_ratings(fake_db) == {"ratingsQuantity": 1, "ratingsAverage": 5.0}

        await service.delete_review(fake_db, second["id"])
        assert last_tour_ratings(fake_db) == {"ratingsQuantity": 0, "ratingsAverage": 4.5}

    @pytest.mark.asyncio
    async def test_update_recomputes(self, service, fake_db, tour_id, reviews, make_user):
        created = await service.create_review(
            fake_db, ReviewCreate(review="Okay", rating=3), make_user()["_id"], tour_id=str(tour_id)
        )
        await service.update_review(fake_db, created["id"], ReviewUpdate(rating=5))

        assert last_tour_ratings(fake_db) == {"ratingsQuantity": 1, "ratingsAverage": 5.0}

    @pytest.mark.asyncio
    async def test_average_is_rounded_to_one_decimal(self, service, fake_db, tour_id, reviews):
        for rating in (5, 4, 4):
            reviews.docs.append({"_id": ObjectId(), "tour": tour_id, "rating": rating})

        assert await service.calculate_ratings(fake_db, tour_id) == (3, 4.3)

    @pytest.mark.asyncio
    async def test_half_is_rounded_up(self, service, fake_db, tour_id, reviews):
        for rating in (5, 5, 4, 3):
            reviews.docs.append({"_id": ObjectId(), "tour": tour_id, "rating": rating})

        assert await service.calculate_ratings(fake_db, tour_id) == (4, 4.3)

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(self, service, fake_db, tour_id, reviews):
        reviews.docs.append({"_id": ObjectId(), "tour": tour_id, "rating": 2})

        first = await service.recalculate_tour_ratings(fake_db, tour_id)
        second = await service.recalculate_tour_ratings(fake_db, tour_id)

        assert first == second == (1, 2.0)

    @pytest.mark.asyncio
    async def test_other_tours_do_not_count(self, service, fake_db, tour_id, reviews):
        reviews.docs.append({"_id": ObjectId(), "tour": ObjectId(), "rating": 1})

        assert await service.calculate_ratings(fake_db, tour_id) == (0, 4.5)


class TestCreateReview:

    @pytest.mark.asyncio
    async def test_stamps_tour_and_author(self, service, fake_db, tour_id, reviews, make_user):
        author = make_user()

        review = await service.create_review(
            fake_db, ReviewCreate(review="Lovely", rating=5), author["_id"], tour_id=str(tour_id)
        )

        assert review["tour"] == str(tour_id)
        assert review["user"] == str(author["_id"])
        assert "__v" not in review
        stored = reviews.docs[0]
        assert stored["tour"] == tour_id
        assert stored["__v"] == 0

    @pytest.mark.asyncio
    async def test_unknown_tour(self, service, fake_db, reviews, make_user):
        fake_db["tours"].find_one.return_value = None

        with pytest.raises(NotFound):
            await service.create_review(
                fake_db, ReviewCreate(review="Hmm", rating=3), make_user()["_id"], tour_id=str(ObjectId())
            )
        assert reviews.docs == []
        fake_db["tours"].update_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_nested_listing_is_restricted_to_the_tour(self, service, fake_db, tour_id):
        await service.list_reviews(fake_db, [("rating[gte]", "4")], tour_id=str(tour_id))

        query, _ = fake_db["reviews"].find.call_args.args
        assert query == {"$and": [{"tour": tour_id}, {"rating": {"$gte": 4}}]}

    @pytest.mark.asyncio
    async def test_second_review_of_the_same_tour(self, service, fake_db, tour_id, reviews, make_user):
        author = make_user()
        fake_db["reviews"].insert_one.side_effect = DuplicateKeyError(
            "E11000 duplicate key error collection: tourbook.reviews index: tour_1_user_1",
            code=11000,
            details={"keyValue": {"tour": tour_id, "user": author["_id"]}},
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.create_review(
                fake_db, ReviewCreate(review="Again", rating=2), author["_id"], tour_id=str(tour_id)
            )

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == (
            f"Duplicate field value: {tour_id}, {author['_id']}. Please use another value!"
        )
        fake_db["tours"].update_one.assert_not_awaited()
