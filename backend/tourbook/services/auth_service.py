"""
Tourbook API: Authentication Service
====================================

What:  Signup, login and the three password flows (forgot, reset, update).
How:   Composes the credential service (hashing and tokens), the users
       collection and the mail service. Every successful flow ends by issuing
       a fresh bearer token for the user.

Password flows:
    forgot  → store sha256(reset token) + expiry, mail the plaintext
    reset   → look up by digest with expiry > now, set new hash, clear fields
    update  → verify current password, set new hash

    Both reset and update stamp `passwordChangedAt` (one second in the past),
    which invalidates every token issued before the change.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase

from tourbook.config import settings
from tourbook.exceptions import InvalidCredentials, MailDeliveryError, NotFound, ValidationError
from tourbook.models.base import VERSION_KEY
from tourbook.models.user import DEFAULT_PHOTO, ROLE_USER, USER
from tourbook.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from tourbook.services.credentials import CredentialService, credential_service
from tourbook.services.factory import ResourceService
from tourbook.services.mail_base import MailService
from tourbook.services.mail_service import mail_service

logger = logging.getLogger(__name__)

RESET_PATH = "/api/v1/users/reset-password/"
RESET_SUBJECT = "Your password reset token (valid for {minutes} min)"

RESET_BODY = (
    "Forgot your password? Submit a PATCH request with your new password and "
    "passwordConfirm to: {url}\n"
    "If you didn't forget your password, please ignore this email!"
)

# The user as the outside world sees it, paired with the token to present
AuthResult = Tuple[str, Dict[str, Any]]


class AuthService:
    def __init__(
        self,
        credentials: CredentialService = credential_service,
        mailer: MailService = mail_service,
    ):
        self.credentials = credentials
        self.mailer = mailer
        self.users = ResourceService(USER)

    def _issue(self, user: Dict[str, Any]) -> AuthResult:
        token = self.credentials.issue_token(str(user["_id"]))
        public = {k: v for k, v in user.items() if k not in USER.hidden_fields and k != VERSION_KEY}
        return token, USER.present(public)

    async def _find_with_secret(self, db: AsyncDatabase, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Looks up an active user including the password hash."""
        return await self.users.collection(db).find_one({**query, **USER.default_filter})

    # ── Signup & Login ────────────────────────────────────────────────────

    async def signup(self, db: AsyncDatabase, body: SignupRequest) -> AuthResult:
        hashed = await self.credentials.hash_secret_async(body.password)
        user = await self.users.insert(
            db,
            {
                "name": body.name,
                "email": body.email,
                "photo": body.photo or DEFAULT_PHOTO,
                "role": ROLE_USER,
                "password": hashed,
                "active": True,
            },
        )
        logger.info("User signed up: %s", user["_id"])
        return self._issue(user)

    async def login(self, db: AsyncDatabase, body: LoginRequest) -> AuthResult:
        if not body.email or not body.password:
            raise ValidationError(message="Please provide email and password!")

        user = await self._find_with_secret(db, {"email": body.email.strip().lower()})
        # Same answer for unknown email and wrong password
        if user is None or not await self.credentials.verify_secret_async(body.password, user.get("password")):
            raise InvalidCredentials()
        return self._issue(user)

    # ── Password flows ────────────────────────────────────────────────────

    async def forgot_password(self, db: AsyncDatabase, body: ForgotPasswordRequest) -> None:
        """
        Stores a reset-token digest and mails the plaintext.

        Raises:
            NotFound:          no active user with that email (404)
            MailDeliveryError: delivery failed after retries; the stored
                               reset fields are cleared before re-raising
        """
        collection = self.users.collection(db)
        user = await collection.find_one({"email": body.email, **USER.default_filter}, {"_id": 1, "email": 1})
        if user is None:
            raise NotFound(
                resource=USER.name,
                message="There is no user with that email address.",
                context={"email": body.email},
            )

        reset = self.credentials.issue_password_reset_token()
        await collection.update_one(
            {"_id": user["_id"]},
            {"$set": {"passwordResetToken": reset.digest, "passwordResetExpires": reset.expires_at}},
        )

        url = f"{settings.public_base_url.rstrip('/')}{RESET_PATH}{reset.plain}"
        try:
            await self.mailer.send(
                to=user["email"],
                subject=RESET_SUBJECT.format(minutes=settings.password_reset_expires_minutes),
                body=RESET_BODY.format(url=url),
            )
        except MailDeliveryError:
            await collection.update_one(
                {"_id": user["_id"]},
                {"$unset": {"passwordResetToken": "", "passwordResetExpires": ""}},
            )
            raise

    async def reset_password(self, db: AsyncDatabase, plain_token: str, body: ResetPasswordRequest) -> AuthResult:
        now = datetime.now(timezone.utc)
        user = await self._find_with_secret(
            db,
            {
                "passwordResetToken": self.credentials.digest_reset_token(plain_token),
                "passwordResetExpires": {"$gt": now},
            },
        )
        if user is None:
            raise ValidationError(message="Token is invalid or has expired")

        user = await self._set_password(
            db,
            user["_id"],
            body.password,
            unset={"passwordResetToken": "", "passwordResetExpires": ""},
        )
        logger.info("Password reset for user %s", user["_id"])
        return self._issue(user)

    async def update_password(
        self, db: AsyncDatabase, user_id: ObjectId, body: UpdatePasswordRequest
    ) -> AuthResult:
        user = await self._find_with_secret(db, {"_id": user_id})
        if user is None:
            raise NotFound(resource=USER.name, resource_id=str(user_id))
        if not await self.credentials.verify_secret_async(body.passwordCurrent, user.get("password")):
            raise InvalidCredentials(message="Your current password is wrong.")

        user = await self._set_password(db, user_id, body.password)
        logger.info("Password updated for user %s", user_id)
        return self._issue(user)

    async def _set_password(
        self,
        db: AsyncDatabase,
        user_id: ObjectId,
        plain: str,
        unset: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        hashed = await self.credentials.hash_secret_async(plain)
        update: Dict[str, Any] = {
            "$set": {
                "password": hashed,
                "passwordChangedAt": self.credentials.password_changed_stamp(),
            },
            "$inc": {VERSION_KEY: 1},
        }
        if unset:
            update["$unset"] = unset
        user = await self.users.collection(db).find_one_and_update(
            {"_id": user_id},
            update,
            projection={VERSION_KEY: 0},
            return_document=ReturnDocument.AFTER,
        )
        if user is None:
            raise NotFound(resource=USER.name, resource_id=str(user_id))
        return user


auth_service = AuthService()
