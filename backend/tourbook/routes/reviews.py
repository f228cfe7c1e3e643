"""
Tourbook API: Review Routes
===========================

    GET    /api/v1/reviews                    list (any logged-in user)
    POST   /api/v1/reviews                    create (role: user)
    GET    /api/v1/reviews/{id}
    PATCH  /api/v1/reviews/{id}               roles: user, admin
    DELETE /api/v1/reviews/{id}               roles: user, admin

The same list / create handlers are mounted under
/api/v1/tours/{tourId}/reviews by routes/tours.py; there the tour comes from
the path.
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Response, status
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import get_database
from tourbook.models.review import ReviewCreate, ReviewUpdate
from tourbook.models.user import ROLE_ADMIN, ROLE_USER
from tourbook.routes.deps import RequireRoles, get_current_user, query_items
from tourbook.schemas.common import listing, success
from tourbook.services.review_service import review_service

router = APIRouter(
    prefix="/api/v1/reviews",
    tags=["Reviews"],
    dependencies=[Depends(get_current_user)],
)


async def list_reviews(
    db: AsyncDatabase,
    params: List[Tuple[str, str]],
    tour_id: Optional[str] = None,
) -> Dict[str, Any]:
    docs, count = await review_service.list_reviews(db, params, tour_id=tour_id)
    return listing(docs, count)


async def create_review(
    db: AsyncDatabase,
    body: ReviewCreate,
    user: Dict[str, Any],
    tour_id: Optional[str] = None,
) -> Dict[str, Any]:
    review = await review_service.create_review(db, body, author_id=user["_id"], tour_id=tour_id)
    return success({"data": review})


@router.get("")
async def get_all_reviews(
    params: List[Tuple[str, str]] = Depends(query_items),
    db: AsyncDatabase = Depends(get_database),
):
    return await list_reviews(db, params)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review_route(
    body: ReviewCreate,
    user: Dict[str, Any] = Depends(RequireRoles(ROLE_USER)),
    db: AsyncDatabase = Depends(get_database),
):
    return await create_review(db, body, user)


@router.get("/{review_id}")
async def get_review(review_id: str, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await review_service.get_one(db, review_id)})


@router.patch("/{review_id}", dependencies=[Depends(RequireRoles(ROLE_USER, ROLE_ADMIN))])
async def update_review(
    review_id: str,
    body: ReviewUpdate,
    db: AsyncDatabase = Depends(get_database),
):
    return success({"data": await review_service.update_review(db, review_id, body)})


@router.delete(
    "/{review_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(RequireRoles(ROLE_USER, ROLE_ADMIN))],
)
async def delete_review(review_id: str, db: AsyncDatabase = Depends(get_database)):
    await review_service.delete_review(db, review_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
