"""
Tourbook API: User & Auth Routes
================================

Public:
    POST   /api/v1/users/signup                 201, token + user
    POST   /api/v1/users/login
    POST   /api/v1/users/forgot-password
    PATCH  /api/v1/users/reset-password/{token}

Logged in:
    PATCH  /api/v1/users/update-my-password
    GET    /api/v1/users/me
    PATCH  /api/v1/users/update-me
    DELETE /api/v1/users/delete-me              soft delete, 204

Admin:
    GET/POST        /api/v1/users               POST always answers 500
    GET/PATCH/DELETE /api/v1/users/{id}
"""

from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import get_database
from tourbook.models.user import ROLE_ADMIN, UserUpdate
from tourbook.routes.deps import RequireRoles, get_current_user, query_items
from tourbook.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdateMeRequest,
    UpdatePasswordRequest,
)
from tourbook.schemas.common import listing, success
from tourbook.services.auth_service import auth_service
from tourbook.services.user_service import user_service

router = APIRouter(prefix="/api/v1/users", tags=["Users"])

ADMIN_ONLY = [Depends(RequireRoles(ROLE_ADMIN))]


def _authenticated(token: str, user: Dict[str, Any]) -> Dict[str, Any]:
    return success({"user": user}, token=token)


# ── Authentication ────────────────────────────────────────────────────────

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, db: AsyncDatabase = Depends(get_database)):
    token, user = await auth_service.signup(db, body)
    return _authenticated(token, user)


@router.post("/login")
async def login(body: LoginRequest, db: AsyncDatabase = Depends(get_database)):
    token, user = await auth_service.login(db, body)
    return _authenticated(token, user)


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, db: AsyncDatabase = Depends(get_database)):
    await auth_service.forgot_password(db, body)
    return success(message="Token sent to email!")


@router.patch("/reset-password/{token}")
async def reset_password(token: str, body: ResetPasswordRequest, db: AsyncDatabase = Depends(get_database)):
    new_token, user = await auth_service.reset_password(db, token, body)
    return _authenticated(new_token, user)


@router.patch("/update-my-password")
async def update_my_password(
    body: UpdatePasswordRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncDatabase = Depends(get_database),
):
    token, updated = await auth_service.update_password(db, user["_id"], body)
    return _authenticated(token, updated)


# ── Current user ──────────────────────────────────────────────────────────

@router.get("/me")
async def get_me(user: Dict[str, Any] = Depends(get_current_user), db: AsyncDatabase = Depends(get_database)):
    return success({"data": await user_service.get_me(db, user["_id"])})


@router.patch("/update-me")
async def update_me(
    body: UpdateMeRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncDatabase = Depends(get_database),
):
    return success({"user": await user_service.update_me(db, user["_id"], body)})


@router.delete("/delete-me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(user: Dict[str, Any] = Depends(get_current_user), db: AsyncDatabase = Depends(get_database)):
    await user_service.delete_me(db, user["_id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Administration ────────────────────────────────────────────────────────

@router.get("", dependencies=ADMIN_ONLY)
async def get_all_users(
    params: List[Tuple[str, str]] = Depends(query_items),
    db: AsyncDatabase = Depends(get_database),
):
    docs, count = await user_service.get_all(db, params)
    return listing(docs, count)


@router.post("", dependencies=ADMIN_ONLY)
async def create_user():
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": "This route is not defined! Please use /signup instead"},
    )


@router.get("/{user_id}", dependencies=ADMIN_ONLY)
async def get_user(user_id: str, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await user_service.get_one(db, user_id)})


@router.patch("/{user_id}", dependencies=ADMIN_ONLY)
async def update_user(user_id: str, body: UserUpdate, db: AsyncDatabase = Depends(get_database)):
    return success({"data": await user_service.admin_update(db, user_id, body)})


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=ADMIN_ONLY)
async def delete_user(user_id: str, db: AsyncDatabase = Depends(get_database)):
    await user_service.delete_one(db, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
