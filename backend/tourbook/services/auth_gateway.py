"""
Tourbook API: Auth Gateway
==========================

What:  Authenticates a bearer token and authorizes the resolved user by role.
Who:   Wrapped by FastAPI dependencies in routes/deps.py; called before any
       protected handler runs.

Per-request state machine:

    Unauthenticated ─extract─▶ TokenExtracted ─verify─▶ TokenVerified
        ─resolve─▶ SubjectResolved ─fresh?─▶ (authorize) ─▶ Admitted

    Every failed transition ends in Rejected via a typed exception:

    header missing / not "Bearer <token>"   → NotAuthenticated  401
    bad signature, malformed, expired        → InvalidToken      401
    user deleted or deactivated              → SubjectGone       401
    password changed after token issued      → StaleToken        401
    role outside the allow-list              → Forbidden         403
"""

import logging
from typing import Any, Dict, FrozenSet, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.database import USERS
from tourbook.exceptions import Forbidden, InvalidToken, NotAuthenticated, StaleToken, SubjectGone
from tourbook.models.user import USER
from tourbook.services.credentials import CredentialService, credential_service

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer"


class AuthGateway:
    def __init__(self, credentials: CredentialService = credential_service):
        self.credentials = credentials

    @staticmethod
    def extract_token(authorization: Optional[str]) -> str:
        if not authorization:
            raise NotAuthenticated()
        scheme, _, token = authorization.strip().partition(" ")
        token = token.strip()
        if scheme.lower() != BEARER_PREFIX or not token:
            raise NotAuthenticated()
        return token

    async def authenticate(self, db: AsyncDatabase, authorization: Optional[str]) -> Dict[str, Any]:
        """
        Runs extract → verify → resolve → freshness check.

        Returns the user document without secret fields except
        `passwordChangedAt`, which downstream handlers may ignore.
        """
        token = self.extract_token(authorization)
        claims = self.credentials.verify_token(token)

        try:
            subject_id = ObjectId(claims.subject_id)
        except InvalidId:
            raise InvalidToken(context={"reason": "subject is not an ObjectId"})

        projection = {name: 0 for name in USER.hidden_fields}
        user = await db[USERS].find_one(
            {"_id": subject_id, **USER.default_filter}, projection
        )
        if user is None:
            raise SubjectGone(context={"subject_id": claims.subject_id})

        if self.credentials.was_secret_changed_after(claims.issued_at, user.get("passwordChangedAt")):
            raise StaleToken(context={"subject_id": claims.subject_id})

        return user

    @staticmethod
    def authorize(user: Dict[str, Any], allowed_roles: FrozenSet[str]) -> Dict[str, Any]:
        role = user.get("role")
        if role not in allowed_roles:
            logger.info("Role %s denied; allowed: %s", role, ", ".join(sorted(allowed_roles)))
            raise Forbidden()
        return user


auth_gateway = AuthGateway()
