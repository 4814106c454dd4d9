"""
Pytest fixtures for custom SSO tests
"""

import json
from collections import defaultdict
from datetime import datetime, timezone
from itertools import count
from typing import Dict, List, Optional, Set, Tuple

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config import Settings
from app.services.sso_service import SSOProxyService
from app.utils.backend_client import BackendAuthClient
from app.utils.exceptions import IdentityPlatformError
from app.utils.outbox import SSOLinkOutbox
from shared.schemas.sso import IdentityRecord, PlatformSession, SSOIntegrationRow


class FakeBackend:
    """In-memory backend auth service served through httpx.MockTransport"""

    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None
        self._ids = count(101)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content or b"{}")

        if self.fail_status:
            return httpx.Response(self.fail_status, json={"message": "backend exploded"})

        if request.url.path == "/users/signup":
            if body["email"] in self.users:
                return httpx.Response(409, json={"message": "Email already registered"})
            user = {
                "id": next(self._ids),
                "email": body["email"],
                "name": body.get("name"),
                "roles": body.get("roles", [])
            }
            self.users[body["email"]] = {**user, "password": body["password"]}
            return httpx.Response(201, json=user)

        if request.url.path == "/auth/login":
            user = self.users.get(body.get("email"))
            if not user or user["password"] != body.get("password"):
                return httpx.Response(401, json={"message": "Invalid credentials"})
            return httpx.Response(200, json={"access_token": f"backend-token-{user['id']}"})

        return httpx.Response(404, json={"message": "Not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeIdentityPlatform:
    """In-memory stand-in for the Supabase admin wrapper"""

    FAILURE_MESSAGES = {
        "create_user": "User creation failed",
        "delete_user": "User deletion failed",
        "get_user": "Failed to find user",
        "find_user_by_email": "Failed to find user",
        "upsert_profile": "Profile creation failed",
        "insert_sso_integration": "SSO integration insert failed: boom",
        "issue_session": "Failed to generate session",
    }

    def __init__(self):
        self.users: Dict[str, IdentityRecord] = {}
        self.profiles: Dict[str, dict] = {}
        self.sso_rows: Dict[Tuple[str, str], SSOIntegrationRow] = {}
        self.fail: Set[str] = set()
        self.calls: List[str] = []
        self._ids = count(1)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise IdentityPlatformError(self.FAILURE_MESSAGES[name])

    def is_available(self) -> bool:
        return True

    async def create_user(self, email, password, metadata):
        self._check("create_user")
        record = IdentityRecord(
            id=f"identity-{next(self._ids)}",
            email=email,
            metadata=dict(metadata),
            created_at=datetime.now(timezone.utc)
        )
        self.users[record.id] = record
        return record

    async def delete_user(self, user_id):
        self._check("delete_user")
        self.users.pop(user_id, None)
        self.profiles.pop(user_id, None)

    async def get_user(self, user_id):
        self._check("get_user")
        return self.users.get(user_id)

    async def find_user_by_email(self, email):
        self._check("find_user_by_email")
        for profile in self.profiles.values():
            if profile["email"] == email:
                return self.users.get(profile["id"])
        return None

    async def upsert_profile(self, record, full_name):
        self._check("upsert_profile")
        self.profiles[record.id] = {"id": record.id, "email": record.email, "full_name": full_name}

    async def insert_sso_integration(self, row):
        self._check("insert_sso_integration")
        key = (row.user_id, row.provider)
        if key not in self.sso_rows:
            self.sso_rows[key] = row.model_copy(update={"id": f"sso-{len(self.sso_rows) + 1}"})
        return self.sso_rows[key]

    async def issue_session(self, email):
        self._check("issue_session")
        return PlatformSession(
            access_token=f"access-{email}",
            refresh_token=f"refresh-{email}",
            expires_in=3600,
            expires_at=2000000000
        )


class FakeRedis:
    """Just the list commands the outbox uses"""

    def __init__(self):
        self.lists = defaultdict(list)
        self.down = False
        self.closed = False

    def _guard(self):
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def rpush(self, key, value):
        self._guard()
        self.lists[key].append(value)
        return len(self.lists[key])

    async def lmove(self, source, destination, src="LEFT", dest="RIGHT"):
        self._guard()
        items = self.lists.get(source)
        if not items:
            return None
        value = items.pop(0) if src == "LEFT" else items.pop()
        if dest == "RIGHT":
            self.lists[destination].append(value)
        else:
            self.lists[destination].insert(0, value)
        return value

    async def lrem(self, key, count, value):
        self._guard()
        items = self.lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        return removed

    async def llen(self, key):
        self._guard()
        return len(self.lists.get(key, []))

    async def ping(self):
        self._guard()
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        supabase_url="http://supabase.test",
        supabase_service_role_key="service-role-key",
        supabase_anon_key="anon-key",
        backend_base_url="http://backend.test",
        sso_outbox_enabled=True,
        sso_outbox_max_attempts=3
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def identity() -> FakeIdentityPlatform:
    return FakeIdentityPlatform()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def outbox(fake_redis) -> SSOLinkOutbox:
    return SSOLinkOutbox(fake_redis)


@pytest.fixture
def backend_client(settings, fake_backend) -> BackendAuthClient:
    return BackendAuthClient(settings, transport=fake_backend.transport())


@pytest.fixture
def sso_service(settings, backend_client, identity, outbox) -> SSOProxyService:
    return SSOProxyService(settings, backend_client, identity, outbox)
