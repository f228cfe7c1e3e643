"""
Tourbook API: HTTP Endpoint Tests
=================================

What:  Requests through the full middleware / dependency / handler stack
       against a mocked MongoDB.

What we test:
    ✅ Response envelope on success and on every error class
    ✅ Protected routes reject missing tokens before the handler runs
    ✅ Role restrictions
    ✅ Query strings reach the pipeline, static tour paths win over /{id}
    ✅ Unknown routes, request validation and the catch-all handler
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId

from conftest import make_cursor


class TestEnvelope:

    @pytest.mark.asyncio
    async def test_unknown_route(self, test_client):
        response = await test_client.get("/api/v1/nothing-here")

        assert response.status_code == 404
        assert response.json()["status"] == "fail"
        assert response.json()["message"] == "Can't find /api/v1/nothing-here on this server!"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client):
        response = await test_client.get("/api/v1/tours", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_500(self, test_client):
        with patch("tourbook.routes.tours.tour_service.tour_stats", AsyncMock(side_effect=RuntimeError("boom"))):
            response = await test_client.get("/api/v1/tours/tour-stats", headers={"X-Request-ID": "feed5678"})

        assert response.status_code == 500
        assert response.json() == {
            "status": "error",
            "message": "Something went very wrong!",
            "request_id": "feed5678",
        }
        assert "boom" not in response.text


class TestTours:

    @pytest.mark.asyncio
    async def test_list_tours(self, test_client, fake_db):
        tour_id = ObjectId()
        fake_db["tours"].find.return_value = make_cursor(
            [{"_id": tour_id, "name": "The Forest Hiker", "duration": 14, "price": 397}]
        )

        response = await test_client.get("/api/v1/tours?price[gte]=100&sort=-price")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "success"
        assert body["results"] == 1
        tour = body["data"]["data"][0]
        assert tour["id"] == str(tour_id)
        assert tour["durationWeeks"] == 2

        query, _ = fake_db["tours"].find.call_args.args
        assert query == {"$and": [{"secretTour": {"$ne": True}}, {"price": {"$gte": 100}}]}

    @pytest.mark.asyncio
    async def test_page_past_the_end(self, test_client, fake_db):
        fake_db["tours"].count_documents.return_value = 3

        response = await test_client.get("/api/v1/tours?page=2&limit=3")

        assert response.status_code == 404
        assert response.json() == {
            "status": "fail",
            "message": "This page does not exist",
            "request_id": response.headers["X-Request-ID"],
        }

    @pytest.mark.asyncio
    async def test_top_five_cheap_is_not_treated_as_an_id(self, test_client, fake_db):
        response = await test_client.get("/api/v1/tours/top-5-cheap")

        assert response.status_code == 200
        cursor = fake_db["tours"].find.return_value
        cursor.limit.assert_called_once_with(5)
        cursor.sort.assert_called_once_with([("ratingsAverage", -1), ("price", 1)])

    @pytest.mark.asyncio
    async def test_malformed_id(self, test_client):
        response = await test_client.get("/api/v1/tours/not-an-id")

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid _id: not-an-id."

    @pytest.mark.asyncio
    async def test_malformed_id_in_filter(self, test_client, fake_db):
        response = await test_client.get("/api/v1/tours?_id=abc")

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid _id: abc."
        fake_db["tours"].find.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("year", ["0", "-5", "10000"])
    async def test_monthly_plan_year_out_of_range(self, test_client, fake_db, make_user, auth_header, year):
        admin = make_user(role="admin")
        fake_db["users"].find_one.return_value = admin

        response = await test_client.get(f"/api/v1/tours/monthly-plan/{year}", headers=auth_header(admin))

        assert response.status_code == 400
        assert response.json()["message"] == f"Invalid year: {year}."
        fake_db["tours"].aggregate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_tour(self, test_client, fake_db):
        fake_db["tours"].find_one.return_value = None

        response = await test_client.get(f"/api/v1/tours/{ObjectId()}")

        assert response.status_code == 404
        assert response.json()["message"] == "No tour found with that ID"

    @pytest.mark.asyncio
    async def test_create_requires_login(self, test_client, fake_db):
        response = await test_client.post("/api/v1/tours", json={"name": "The Snow Adventurer"})

        assert response.status_code == 401
        fake_db["tours"].insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_forbidden_for_plain_users(self, test_client, fake_db, make_user, auth_header):
        user = make_user(role="user")
        fake_db["users"].find_one.return_value = user

        response = await test_client.post("/api/v1/tours", json={}, headers=auth_header(user))

        assert response.status_code == 403
        assert response.json()["message"] == "You do not have permission to perform this action"

    @pytest.mark.asyncio
    async def test_bad_latlng(self, test_client):
        response = await test_client.get("/api/v1/tours/tours-within/200/center/34.1/unit/mi")

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide latitude and longitude in the format lat,lng."


class TestNestedReviews:

    @pytest.mark.asyncio
    async def test_reviews_of_a_tour_require_a_token(self, test_client, fake_db):
        with patch("tourbook.routes.reviews.review_service.list_reviews", AsyncMock()) as handler:
            response = await test_client.get(f"/api/v1/tours/{ObjectId()}/reviews")

        assert response.status_code == 401
        assert response.json()["message"] == "You are not logged in! Please log in to get access."
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reviews_of_a_tour(self, test_client, fake_db, make_user, auth_header):
        user = make_user()
        tour_id = ObjectId()
        fake_db["users"].find_one.return_value = user
        fake_db["reviews"].find.return_value = make_cursor(
            [{"_id": ObjectId(), "review": "Great", "rating": 5, "tour": tour_id, "user": user["_id"]}]
        )

        response = await test_client.get(f"/api/v1/tours/{tour_id}/reviews", headers=auth_header(user))

        assert response.status_code == 200
        assert response.json()["results"] == 1
        query, _ = fake_db["reviews"].find.call_args.args
        assert query == {"$and": [{"tour": tour_id}]}

    @pytest.mark.asyncio
    async def test_guides_cannot_post_reviews(self, test_client, fake_db, make_user, auth_header):
        guide = make_user(role="guide")
        fake_db["users"].find_one.return_value = guide

        response = await test_client.post(
            f"/api/v1/tours/{ObjectId()}/reviews",
            json={"review": "Nice", "rating": 4},
            headers=auth_header(guide),
        )

        assert response.status_code == 403


class TestUsers:

    @pytest.mark.asyncio
    async def test_signup_mismatch_stores_nothing(self, test_client, fake_db):
        response = await test_client.post(
            "/api/v1/users/signup",
            json={
                "name": "Jonas",
                "email": "jonas@tourbook.io",
                "password": "pass1234",
                "passwordConfirm": "pass4321",
            },
        )

        assert response.status_code == 400
        assert response.json()["status"] == "fail"
        assert "Passwords are not the same!" in response.json()["message"]
        fake_db["users"].insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signup(self, test_client, fake_db):
        new_id = ObjectId()
        fake_db["users"].insert_one.return_value = SimpleNamespace(inserted_id=new_id)

        response = await test_client.post(
            "/api/v1/users/signup",
            json={
                "name": "Jonas",
                "email": "jonas@tourbook.io",
                "password": "pass1234",
                "passwordConfirm": "pass1234",
                "role": "admin",
            },
        )

        body = response.json()
        assert response.status_code == 201
        assert body["token"]
        assert body["data"]["user"]["role"] == "user"
        assert body["data"]["user"]["id"] == str(new_id)
        assert "password" not in body["data"]["user"]

    @pytest.mark.asyncio
    async def test_login_without_password(self, test_client):
        response = await test_client.post("/api/v1/users/login", json={"email": "jonas@tourbook.io"})

        assert response.status_code == 400
        assert response.json()["message"] == "Please provide email and password!"

    @pytest.mark.asyncio
    async def test_update_me_rejects_password(self, test_client, fake_db, make_user, auth_header):
        user = make_user()
        fake_db["users"].find_one.return_value = user

        response = await test_client.patch(
            "/api/v1/users/update-me",
            json={"password": "newpass123", "passwordConfirm": "newpass123"},
            headers=auth_header(user),
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            "This route is not for password updates. Please use /update-my-password."
        )

    @pytest.mark.asyncio
    async def test_delete_me_is_soft(self, test_client, fake_db, make_user, auth_header):
        user = make_user()
        fake_db["users"].find_one.return_value = user
        fake_db["users"].find_one_and_update.return_value = dict(user, active=False)

        response = await test_client.delete("/api/v1/users/delete-me", headers=auth_header(user))

        assert response.status_code == 204
        assert response.content == b""
        _, update = fake_db["users"].find_one_and_update.await_args.args
        assert update["$set"] == {"active": False}
        fake_db["users"].find_one_and_delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_user_points_to_signup(self, test_client, fake_db, make_user, auth_header):
        admin = make_user(role="admin")
        fake_db["users"].find_one.return_value = admin

        response = await test_client.post("/api/v1/users", json={}, headers=auth_header(admin))

        assert response.status_code == 500
        assert response.json() == {
            "status": "error",
            "message": "This route is not defined! Please use /signup instead",
        }

    @pytest.mark.asyncio
    async def test_user_list_is_admin_only(self, test_client, fake_db, make_user, auth_header):
        user = make_user(role="lead-guide")
        fake_db["users"].find_one.return_value = user

        response = await test_client.get("/api/v1/users", headers=auth_header(user))

        assert response.status_code == 403


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client, fake_db):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        fake_db.command.assert_awaited_once_with("ping")
