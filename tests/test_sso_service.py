"""
Custom SSO service tests
"""

import json

import pytest

from app.services.sso_service import SSOProxyService, resolve_action
from app.utils.exceptions import (
    BackendServiceError,
    DuplicateIdentityError,
    IdentityNotFoundError,
    IdentityPlatformError,
    InvalidActionError,
    InvalidRequestError,
)
from app.utils.outbox import SSOLinkOutbox
from shared.schemas.sso import ProxyAction, SSORequest


class TestResolveAction:
    def test_canonical_actions(self):
        assert resolve_action("signup") is ProxyAction.SIGNUP
        assert resolve_action("login") is ProxyAction.LOGIN

    def test_signin_alias_maps_to_login(self):
        assert resolve_action("signin") is ProxyAction.LOGIN

    def test_case_and_whitespace_ignored(self):
        assert resolve_action(" LOGIN ") is ProxyAction.LOGIN

    @pytest.mark.parametrize("action", ["transfer", "", None, "delete"])
    def test_unknown_action_rejected(self, action):
        with pytest.raises(InvalidActionError) as exc_info:
            resolve_action(action)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid action"


class TestSignup:
    @pytest.mark.asyncio
    async def test_signup_creates_one_of_each_record(self, sso_service, identity, fake_backend):
        result = await sso_service.signup("a@b.com", "pw1", "A B")

        assert result.success is True
        assert result.backend_user.id == "101"
        assert result.backend_user.roles == ["user"]
        assert len(fake_backend.users) == 1
        assert len(identity.users) == 1

        record = result.user
        assert record.email == "a@b.com"
        assert record.metadata["backend_user_id"] == "101"
        assert record.metadata["full_name"] == "A B"
        assert record.metadata["roles"] == ["user"]
        assert identity.profiles[record.id]["full_name"] == "A B"

        rows = list(identity.sso_rows.values())
        assert len(rows) == 1
        assert rows[0].user_id == record.id
        assert rows[0].provider == "custom"
        assert rows[0].external_user_id == "101"

    @pytest.mark.asyncio
    async def test_signup_forwards_name_and_roles(self, sso_service, fake_backend):
        await sso_service.signup("a@b.com", "pw1", "A B", ["admin", "user"])

        sent = json.loads(fake_backend.requests[0].content)
        assert sent == {"email": "a@b.com", "password": "pw1", "name": "A B", "roles": ["admin", "user"]}

    @pytest.mark.asyncio
    async def test_signup_defaults_name(self, sso_service, fake_backend):
        result = await sso_service.signup("a@b.com", "pw1")

        sent = json.loads(fake_backend.requests[0].content)
        assert sent["name"] == "User"
        assert result.user.metadata["full_name"] == "User"

    @pytest.mark.asyncio
    async def test_existing_identity_rejected_before_backend(self, sso_service, fake_backend):
        await sso_service.signup("a@b.com", "pw1")
        fake_backend.requests.clear()

        with pytest.raises(DuplicateIdentityError) as exc_info:
            await sso_service.signup("a@b.com", "pw1")

        assert exc_info.value.status_code == 409
        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_backend_failure_creates_nothing(self, sso_service, identity, fake_backend):
        fake_backend.fail_status = 500

        with pytest.raises(BackendServiceError) as exc_info:
            await sso_service.signup("a@b.com", "pw1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.upstream_status == 500
        assert exc_info.value.upstream_body == {"message": "backend exploded"}
        assert identity.users == {}
        assert identity.profiles == {}
        assert identity.sso_rows == {}

    @pytest.mark.asyncio
    async def test_identity_failure_after_backend_success_leaves_backend_user(
        self, sso_service, identity, fake_backend
    ):
        """Known gap: the backend offers no delete, so only the backend side keeps the user"""
        identity.fail.add("create_user")

        with pytest.raises(IdentityPlatformError) as exc_info:
            await sso_service.signup("a@b.com", "pw1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "User creation failed"
        assert "a@b.com" in fake_backend.users
        assert identity.users == {}
        assert identity.profiles == {}
        assert identity.sso_rows == {}
        assert "insert_sso_integration" not in identity.calls

    @pytest.mark.asyncio
    async def test_profile_failure_rolls_back_identity(self, sso_service, identity):
        identity.fail.add("upsert_profile")

        with pytest.raises(IdentityPlatformError) as exc_info:
            await sso_service.signup("a@b.com", "pw1")

        assert exc_info.value.message == "User creation failed"
        assert "delete_user" in identity.calls
        assert identity.users == {}
        assert identity.sso_rows == {}

    @pytest.mark.asyncio
    async def test_sso_link_failure_is_queued_and_signup_succeeds(self, sso_service, identity, fake_redis):
        identity.fail.add("insert_sso_integration")

        result = await sso_service.signup("a@b.com", "pw1")

        assert result.success is True
        assert identity.sso_rows == {}
        pending = fake_redis.lists[SSOLinkOutbox.PENDING_KEY]
        assert len(pending) == 1
        entry = json.loads(pending[0])
        assert entry["row"] == {
            "user_id": result.user.id,
            "provider": "custom",
            "external_user_id": "101"
        }
        assert entry["attempts"] == 0
        assert "boom" in entry["last_error"]

    @pytest.mark.asyncio
    async def test_sso_link_failure_with_outbox_down_still_succeeds(self, sso_service, identity, fake_redis):
        identity.fail.add("insert_sso_integration")
        fake_redis.down = True

        result = await sso_service.signup("a@b.com", "pw1")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_sso_link_failure_without_outbox(self, settings, backend_client, identity):
        service = SSOProxyService(settings, backend_client, identity, outbox=None)
        identity.fail.add("insert_sso_integration")

        result = await service.signup("a@b.com", "pw1")

        assert result.success is True


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_returns_token_session_and_user(self, sso_service):
        signup = await sso_service.signup("a@b.com", "pw1", "A B")

        result = await sso_service.login("a@b.com", "pw1")

        assert result.success is True
        assert result.backend_token == "backend-token-101"
        assert result.session.access_token == "access-a@b.com"
        assert result.session.refresh_token == "refresh-a@b.com"
        assert result.user.id == signup.user.id

    @pytest.mark.asyncio
    async def test_wrong_password_fails_without_session(self, sso_service, identity):
        await sso_service.signup("a@b.com", "pw1")
        identity.calls.clear()

        with pytest.raises(BackendServiceError) as exc_info:
            await sso_service.login("a@b.com", "wrong")

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Backend login failed"
        assert exc_info.value.upstream_body == {"message": "Invalid credentials"}
        assert "issue_session" not in identity.calls

    @pytest.mark.asyncio
    async def test_backend_user_without_identity_is_not_found(self, sso_service, identity, fake_backend):
        fake_backend.users["x@y.com"] = {"id": 7, "email": "x@y.com", "roles": [], "password": "pw"}

        with pytest.raises(IdentityNotFoundError) as exc_info:
            await sso_service.login("x@y.com", "pw")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "User not found"
        assert "issue_session" not in identity.calls

    @pytest.mark.asyncio
    async def test_identity_provisioned_when_not_required(self, settings, backend_client, identity, fake_backend):
        settings.login_require_identity = False
        service = SSOProxyService(settings, backend_client, identity)
        fake_backend.users["x@y.com"] = {"id": 7, "email": "x@y.com", "roles": [], "password": "pw"}

        result = await service.login("x@y.com", "pw")

        assert result.success is True
        assert result.user.email == "x@y.com"
        assert result.user.metadata["provisioned_at_login"] is True
        assert identity.profiles[result.user.id]["email"] == "x@y.com"

    @pytest.mark.asyncio
    async def test_session_failure_is_identity_error(self, sso_service, identity):
        await sso_service.signup("a@b.com", "pw1")
        identity.fail.add("issue_session")

        with pytest.raises(IdentityPlatformError) as exc_info:
            await sso_service.login("a@b.com", "pw1")

        assert exc_info.value.message == "Failed to generate session"


class TestHandle:
    @pytest.mark.asyncio
    async def test_invalid_action_makes_no_calls(self, sso_service, identity, fake_backend):
        with pytest.raises(InvalidActionError):
            await sso_service.handle(SSORequest(action="transfer", email="a@b.com", password="pw1"))

        assert fake_backend.requests == []
        assert identity.calls == []

    @pytest.mark.asyncio
    async def test_missing_credentials_rejected(self, sso_service, fake_backend):
        with pytest.raises(InvalidRequestError):
            await sso_service.handle(SSORequest(action="login", email="a@b.com"))

        assert fake_backend.requests == []

    @pytest.mark.asyncio
    async def test_email_normalized(self, sso_service, identity):
        await sso_service.handle(SSORequest(action="signup", email="  A@B.com ", password="pw1"))

        assert list(identity.users.values())[0].email == "a@b.com"
