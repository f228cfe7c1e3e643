"""
FastAPI dependencies shared by the routers: the authenticated user and
role restriction.

    @router.delete("/{id}", dependencies=[Depends(RequireRoles(ADMIN, LEAD_GUIDE))])
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, Header, Request
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import get_database
from tourbook.services.auth_gateway import auth_gateway


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: AsyncDatabase = Depends(get_database),
) -> Dict[str, Any]:
    return await auth_gateway.authenticate(db, authorization)


class RequireRoles:
    """Admits the current user only when their role is in `roles`."""

    def __init__(self, *roles: str):
        self.roles = frozenset(roles)

    async def __call__(self, user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        return auth_gateway.authorize(user, self.roles)


def query_items(request: Request) -> List[Tuple[str, str]]:
    """Raw query-string pairs, repeated keys included, for the query pipeline."""
    return request.query_params.multi_items()
