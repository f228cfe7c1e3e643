"""
Tourbook API: Auth Gateway Tests
================================

Walks the per-request state machine: every rejection path and the admitted path.
"""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from tourbook.exceptions import (
    Forbidden,
    InvalidToken,
    NotAuthenticated,
    StaleToken,
    SubjectGone,
)
from tourbook.services.auth_gateway import AuthGateway
from tourbook.services.credentials import CredentialService


@pytest.fixture
def credentials():
    return CredentialService(secret="gateway-test-secret-123456", bcrypt_rounds=4)


@pytest.fixture
def gateway(credentials):
    return AuthGateway(credentials)


class TestExtractToken:

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "token-only"])
    def test_missing_or_malformed_header(self, header):
        with pytest.raises(NotAuthenticated) as exc_info:
            AuthGateway.extract_token(header)
        assert exc_info.value.message == "You are not logged in! Please log in to get access."

    def test_bearer_token(self):
        assert AuthGateway.extract_token("Bearer abc.def.ghi") == "abc.def.ghi"


class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_admitted(self, gateway, credentials, fake_db, make_user):
        user = make_user()
        fake_db["users"].find_one.return_value = user
        token = credentials.issue_token(str(user["_id"]))

        result = await gateway.authenticate(fake_db, f"Bearer {token}")

        assert result is user
        query, projection = fake_db["users"].find_one.await_args.args
        assert query == {"_id": user["_id"], "active": {"$ne": False}}
        assert projection["password"] == 0

    @pytest.mark.asyncio
    async def test_tampered_token(self, gateway, credentials, fake_db):
        token = credentials.issue_token(str(ObjectId()))
        with pytest.raises(InvalidToken):
            await gateway.authenticate(fake_db, "Bearer " + token.rsplit(".", 1)[0] + ".forged-signature")
        fake_db["users"].find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_subject_not_an_object_id(self, gateway, credentials, fake_db):
        token = credentials.issue_token("not-an-id")
        with pytest.raises(InvalidToken):
            await gateway.authenticate(fake_db, f"Bearer {token}")

    @pytest.mark.asyncio
    async def test_deleted_or_inactive_user(self, gateway, credentials, fake_db):
        fake_db["users"].find_one.return_value = None
        token = credentials.issue_token(str(ObjectId()))

        with pytest.raises(SubjectGone) as exc_info:
            await gateway.authenticate(fake_db, f"Bearer {token}")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_token_issued_before_password_change_is_stale(self, gateway, credentials, fake_db, make_user):
        issued = datetime.now(timezone.utc) - timedelta(hours=1)
        user = make_user(passwordChangedAt=issued + timedelta(minutes=30))
        fake_db["users"].find_one.return_value = user
        token = credentials.issue_token(str(user["_id"]), now=issued)

        with pytest.raises(StaleToken) as exc_info:
            await gateway.authenticate(fake_db, f"Bearer {token}")
        assert exc_info.value.message == "User recently changed password! Please log in again."

    @pytest.mark.asyncio
    async def test_token_issued_after_password_change(self, gateway, credentials, fake_db, make_user):
        user = make_user(passwordChangedAt=datetime.now(timezone.utc) - timedelta(days=1))
        fake_db["users"].find_one.return_value = user
        token = credentials.issue_token(str(user["_id"]))

        assert await gateway.authenticate(fake_db, f"Bearer {token}") is user


class TestAuthorize:

    def test_role_in_allow_list(self, make_user):
        user = make_user(role="lead-guide")
        assert AuthGateway.authorize(user, frozenset({"admin", "lead-guide"})) is user

    def test_role_outside_allow_list(self, make_user):
        with pytest.raises(Forbidden) as exc_info:
            AuthGateway.authorize(make_user(role="user"), frozenset({"admin", "lead-guide"}))
        assert exc_info.value.status_code == 403
