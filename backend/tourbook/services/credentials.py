"""
Tourbook API: Credential & Token Service
========================================

What:  Password hashing, bearer tokens and password-reset tokens.
How:   passlib's bcrypt context for secrets, python-jose for HS256 JWTs,
       `secrets` + sha256 for reset tokens.

Rules enforced by callers (AuthService):
    - hash_secret() runs only when the secret actually changed
    - only the sha256 digest of a reset token is persisted; the plaintext
      leaves the process once, inside the reset email
"""

import asyncio
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from tourbook.config import settings
from tourbook.exceptions import ExpiredToken, InvalidToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    issued_at: datetime


@dataclass(frozen=True)
class ResetToken:
    plain: str
    digest: str
    expires_at: datetime


class CredentialService:
    """
    Stateless apart from its configuration.

    Hashing is CPU-bound (about 250ms at cost 12), so the async wrappers push
    it onto a worker thread instead of stalling the event loop.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(days=2),
        reset_ttl: timedelta = timedelta(minutes=10),
        bcrypt_rounds: int = 12,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.token_ttl = token_ttl
        self.reset_ttl = reset_ttl
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=bcrypt_rounds
        )

    # ── Secrets ───────────────────────────────────────────────────────────

    def hash_secret(self, plain: str) -> str:
        return self.pwd_context.hash(plain)

    def verify_secret(self, plain: str, hashed: Optional[str]) -> bool:
        if not hashed:
            return False
        try:
            return self.pwd_context.verify(plain, hashed)
        except ValueError:
            # not a bcrypt hash at all
            logger.warning("Stored credential is not a recognised hash")
            return False

    async def hash_secret_async(self, plain: str) -> str:
        return await asyncio.to_thread(self.hash_secret, plain)

    async def verify_secret_async(self, plain: str, hashed: Optional[str]) -> bool:
        return await asyncio.to_thread(self.verify_secret, plain, hashed)

    # ── Bearer tokens ─────────────────────────────────────────────────────

    def issue_token(self, subject_id: str, now: Optional[datetime] = None) -> str:
        """Signs {sub, iat, exp}; exp is iat + token_ttl."""
        issued = now or datetime.now(timezone.utc)
        claims = {
            "sub": str(subject_id),
            "iat": int(issued.timestamp()),
            "exp": int((issued + self.token_ttl).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> TokenClaims:
        """
        Raises:
            ExpiredToken: signature fine but exp has passed
            InvalidToken: bad signature, malformed token or missing claims
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise ExpiredToken()
        except JWTError as e:
            raise InvalidToken(context={"reason": str(e)})

        subject = payload.get("sub")
        issued_at = payload.get("iat")
        if not subject or not isinstance(issued_at, (int, float)):
            raise InvalidToken(context={"reason": "missing sub or iat"})
        return TokenClaims(
            subject_id=subject,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
        )

    # ── Password reset ────────────────────────────────────────────────────

    @staticmethod
    def digest_reset_token(plain: str) -> str:
        return hashlib.sha256(plain.encode("utf-8")).hexdigest()

    def issue_password_reset_token(self, now: Optional[datetime] = None) -> ResetToken:
        plain = secrets.token_hex(32)
        issued = now or datetime.now(timezone.utc)
        return ResetToken(
            plain=plain,
            digest=self.digest_reset_token(plain),
            expires_at=issued + self.reset_ttl,
        )

    # ── Rotation ──────────────────────────────────────────────────────────

    @staticmethod
    def was_secret_changed_after(issued_at: datetime, changed_at: Optional[datetime]) -> bool:
        """True when the credential rotated after the token was issued (whole seconds)."""
        if changed_at is None:
            return False
        if changed_at.tzinfo is None:
            changed_at = changed_at.replace(tzinfo=timezone.utc)
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        return int(issued_at.timestamp()) < int(changed_at.timestamp())

    @staticmethod
    def password_changed_stamp(now: Optional[datetime] = None) -> datetime:
        # One second back: the token issued right after the change carries
        # an iat in the same second and must not count as stale
        return (now or datetime.now(timezone.utc)) - timedelta(seconds=1)


credential_service = CredentialService(
    secret=settings.jwt_secret,
    algorithm=settings.jwt_algorithm,
    token_ttl=settings.jwt_expires_in,
    reset_ttl=settings.password_reset_expires_in,
    bcrypt_rounds=settings.bcrypt_rounds,
)
