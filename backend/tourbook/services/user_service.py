"""
Tourbook API: User Service
==========================

What:  Self-service profile endpoints (me / update-me / delete-me) and the
       admin user CRUD built on the generic factory.
How:   Deleting your own account is a soft delete (`active: false`); the
       users default filter then hides the account from every read, login
       and token check. Admin delete removes the document.
"""

import logging
from typing import Any, Dict

from bson import ObjectId
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.exceptions import ValidationError
from tourbook.models.user import USER, UserUpdate
from tourbook.schemas.auth import UpdateMeRequest
from tourbook.services.factory import ResourceService

logger = logging.getLogger(__name__)

SELF_EDITABLE = ("name", "email")


class UserService(ResourceService):
    def __init__(self):
        super().__init__(USER)

    async def get_me(self, db: AsyncDatabase, user_id: ObjectId) -> Dict[str, Any]:
        return await self.get_one(db, user_id)

    async def update_me(self, db: AsyncDatabase, user_id: ObjectId, body: UpdateMeRequest) -> Dict[str, Any]:
        if body.password is not None or body.passwordConfirm is not None:
            raise ValidationError(
                message="This route is not for password updates. Please use /update-my-password.",
                field="password",
            )
        changes = body.model_dump(include=set(SELF_EDITABLE), exclude_none=True)
        return await self.update_one(db, user_id, changes)

    async def delete_me(self, db: AsyncDatabase, user_id: ObjectId) -> None:
        await self.update_raw(db, user_id, {"active": False})
        logger.info("User %s deactivated their account", user_id)

    async def admin_update(self, db: AsyncDatabase, user_id: str, body: UserUpdate) -> Dict[str, Any]:
        return await self.update_one(db, user_id, body.model_dump(exclude_unset=True, exclude_none=True))


user_service = UserService()
