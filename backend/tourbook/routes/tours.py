"""
Tourbook API: Tour Routes
=========================

    GET    /api/v1/tours                                   public, query pipeline
    POST   /api/v1/tours                                   admin, lead-guide
    GET    /api/v1/tours/top-5-cheap                       alias over the list
    GET    /api/v1/tours/tour-stats
    GET    /api/v1/tours/monthly-plan/{year}               admin, lead-guide, guide
    GET    /api/v1/tours/tours-within/{distance}/center/{latlng}/unit/{unit}
    GET    /api/v1/tours/distances/{latlng}/unit/{unit}
    GET    /api/v1/tours/{id}                              with guides and reviews
    PATCH  /api/v1/tours/{id}                              admin, lead-guide
    DELETE /api/v1/tours/{id}                              admin, lead-guide
    GET    /api/v1/tours/{tourId}/reviews                  logged in
    POST   /api/v1/tours/{tourId}/reviews                  role user

Static paths are declared before `/{tour_id}` so they are matched first.
"""

from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, Depends, Response, status
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import get_database
from tourbook.models.review import ReviewCreate
from tourbook.models.tour import TourCreate, TourUpdate
from tourbook.models.user import ROLE_ADMIN, ROLE_GUIDE, ROLE_LEAD_GUIDE, ROLE_USER
from tourbook.routes import reviews
from tourbook.routes.deps import RequireRoles, get_current_user, query_items
from tourbook.schemas.common import listing, success
from tourbook.services.tour_service import apply_top_cheap_alias, tour_service

router = APIRouter(prefix="/api/v1/tours", tags=["Tours"])

TOUR_EDITORS = RequireRoles(ROLE_ADMIN, ROLE_LEAD_GUIDE)


# ── Collection ────────────────────────────────────────────────────────────

@router.get("")
async def get_all_tours(
    params: List[Tuple[str, str]] = Depends(query_items),
    db: AsyncDatabase = Depends(get_database),
):
    docs, count = await tour_service.get_all(db, params)
    return listing(docs, count)


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(TOUR_EDITORS)])
async def create_tour(body: TourCreate, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await tour_service.create_tour(db, body)})


# ── Aliases & aggregations ────────────────────────────────────────────────

@router.get("/top-5-cheap")
async def top_five_cheap(
    params: List[Tuple[str, str]] = Depends(query_items),
    db: AsyncDatabase = Depends(get_database),
):
    docs, count = await tour_service.get_all(db, apply_top_cheap_alias(params))
    return listing(docs, count)


@router.get("/tour-stats")
async def get_tour_stats(db: AsyncDatabase = Depends(get_database)):
    return success({"stats": await tour_service.tour_stats(db)})


@router.get(
    "/monthly-plan/{year}",
    dependencies=[Depends(RequireRoles(ROLE_ADMIN, ROLE_LEAD_GUIDE, ROLE_GUIDE))],
)
async def get_monthly_plan(year: int, db: AsyncDatabase = Depends(get_database)):
    return success({"plan": await tour_service.monthly_plan(db, year)})


@router.get("/tours-within/{distance}/center/{latlng}/unit/{unit}")
async def get_tours_within(
    distance: float,
    latlng: str,
    unit: str,
    db: AsyncDatabase = Depends(get_database),
):
    docs = await tour_service.tours_within(db, distance, latlng, unit)
    return listing(docs, len(docs))


@router.get("/distances/{latlng}/unit/{unit}")
async def get_distances(latlng: str, unit: str, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await tour_service.distances(db, latlng, unit)})


# ── Nested reviews ────────────────────────────────────────────────────────

@router.get("/{tour_id}/reviews", dependencies=[Depends(get_current_user)])
async def get_tour_reviews(
    tour_id: str,
    params: List[Tuple[str, str]] = Depends(query_items),
    db: AsyncDatabase = Depends(get_database),
):
    return await reviews.list_reviews(db, params, tour_id=tour_id)


@router.post("/{tour_id}/reviews", status_code=status.HTTP_201_CREATED)
async def create_tour_review(
    tour_id: str,
    body: ReviewCreate,
    user: Dict[str, Any] = Depends(RequireRoles(ROLE_USER)),
    db: AsyncDatabase = Depends(get_database),
):
    return await reviews.create_review(db, body, user, tour_id=tour_id)


# ── Single tour ───────────────────────────────────────────────────────────

@router.get("/{tour_id}")
async def get_tour(tour_id: str, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await tour_service.get_tour(db, tour_id)})


@router.patch("/{tour_id}", dependencies=[Depends(TOUR_EDITORS)])
async def update_tour(tour_id: str, body: TourUpdate, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await tour_service.update_tour(db, tour_id, body)})


@router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(TOUR_EDITORS)])
async def delete_tour(tour_id: str, db: AsyncDatabase = Depends(get_database)):
    await tour_service.delete_tour(db, tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
