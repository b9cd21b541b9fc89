"""Tests for the auth cache, bearer-token resolution and /user routes."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import auth_headers, make_token
from fieldops.auth import AuthLookupUnavailable, CurrentUser, resolve_user
from fieldops.cache import AuthCache
from fieldops.database import get_db
from fieldops.main import app


def _broken_session() -> MagicMock:
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT users", {}, Exception("connection reset"))
    return session


@pytest.fixture
def broken_db():
    """Swap the request session for one whose queries fail"""

    def override_get_db():
        yield _broken_session()

    def _install():
        app.dependency_overrides[get_db] = override_get_db

    return _install


class TestAuthCache:
    def test_entries_expire_after_ttl(self, clock) -> None:
        cache = AuthCache(ttl=15, clock=clock)
        cache.set("token", "user")

        clock.advance(14.9)
        assert cache.get("token") == "user"

        clock.advance(0.2)
        assert cache.get("token") is None
        assert cache.get_stale("token") == "user"

    def test_invalidate_and_clear(self, clock) -> None:
        cache = AuthCache(ttl=15, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
        assert cache.get_stale("b") is None

    def test_old_tokens_are_swept_on_write(self, clock) -> None:
        cache = AuthCache(ttl=15, clock=clock)
        for i in range(1000):
            cache.set(f"token-{i}", i)

        clock.advance(3600)
        cache.set("fresh", "user")

        assert len(cache) == 1
        assert cache.get("fresh") == "user"

    def test_recently_expired_entries_survive_the_sweep(self, clock) -> None:
        cache = AuthCache(ttl=15, clock=clock, max_stale_age=300)
        cache.set("old", "ancient")
        clock.advance(200)
        cache.set("recent", "user")

        clock.advance(120)
        cache.set("fresh", "other")

        assert cache.get("recent") is None
        assert cache.get_stale("recent") == "user"
        assert cache.get_stale("old") is None
        assert len(cache) == 2


class TestResolveUser:
    def test_lookup_is_memoized(self, db_session, tenants, auth_cache) -> None:
        token = make_token(tenants.owner.id)

        first = resolve_user(token, db_session, auth_cache)
        second = resolve_user(token, _broken_session(), auth_cache)

        assert isinstance(first, CurrentUser)
        assert first == second
        assert first.organization_id == tenants.organization.id

    def test_stale_entry_is_served_when_lookup_fails(self, db_session, tenants, auth_cache, clock) -> None:
        token = make_token(tenants.owner.id)
        resolve_user(token, db_session, auth_cache)
        clock.advance(60)

        assert resolve_user(token, _broken_session(), auth_cache).id == tenants.owner.id

    def test_lookup_failure_without_cache_raises(self, tenants, auth_cache) -> None:
        with pytest.raises(AuthLookupUnavailable):
            resolve_user(make_token(tenants.owner.id), _broken_session(), auth_cache)

    def test_misses_are_not_cached(self, db_session, tenants, auth_cache) -> None:
        assert resolve_user(make_token("ghost-user"), db_session, auth_cache) is None
        assert len(auth_cache) == 0

    def test_inactive_user_does_not_resolve(self, db_session, tenants, auth_cache) -> None:
        tenants.technician.is_active = False
        db_session.commit()

        assert resolve_user(make_token(tenants.technician.id), db_session, auth_cache) is None


class TestCurrentUserRoute:
    def test_returns_profile(self, client, tenants) -> None:
        response = client.get("/user/current", headers=auth_headers(tenants.owner))

        assert response.status_code == 200
        assert response.json() == {
            "id": tenants.owner.id,
            "email": "owner@acme.test",
            "full_name": "Olive Owner",
            "role": "owner",
        }

    def test_missing_token_is_401(self, client) -> None:
        response = client.get("/user/current")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_bad_signature_is_401(self, client, tenants) -> None:
        token = make_token(tenants.owner.id, secret="not-the-secret")

        response = client.get("/user/current", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_expired_token_is_401(self, client, tenants) -> None:
        token = make_token(tenants.owner.id, expires_in=timedelta(minutes=-5))

        response = client.get("/user/current", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_transient_lookup_failure_is_503(self, client, tenants, broken_db) -> None:
        headers = auth_headers(tenants.owner)
        broken_db()

        response = client.get("/user/current", headers=headers)

        assert response.status_code == 503
        assert response.json()["transient"] is True

    def test_cached_user_survives_a_lookup_failure(self, client, tenants, broken_db) -> None:
        headers = auth_headers(tenants.owner)
        assert client.get("/user/current", headers=headers).status_code == 200
        broken_db()

        response = client.get("/user/current", headers=headers)

        assert response.status_code == 200
        assert response.json()["role"] == "owner"

    def test_unknown_user_is_503_rate_limited(self, client) -> None:
        response = client.get(
            "/user/current", headers={"Authorization": f"Bearer {make_token('ghost-user')}"}
        )

        assert response.status_code == 503
        assert response.json()["rateLimited"] is True

    def test_logout_invalidates_cache(self, client, tenants, auth_cache) -> None:
        headers = auth_headers(tenants.owner)
        client.get("/user/current", headers=headers)
        assert len(auth_cache) == 1

        response = client.post("/user/logout", headers=headers)

        assert response.status_code == 200
        assert len(auth_cache) == 0

    def test_role_change_visible_after_ttl(self, client, db_session, tenants, clock) -> None:
        headers = auth_headers(tenants.owner)
        client.get("/user/current", headers=headers)

        tenants.owner.role = "viewer"
        db_session.commit()
        assert client.get("/user/current", headers=headers).json()["role"] == "owner"

        clock.advance(16)
        assert client.get("/user/current", headers=headers).json()["role"] == "viewer"


class TestRoleGuards:
    def test_transient_failure_on_protected_route_is_503(self, client, tenants, broken_db) -> None:
        headers = auth_headers(tenants.owner)
        broken_db()

        response = client.delete("/jobs/some-job/delete", headers=headers)

        assert response.status_code == 503

    def test_health_is_public(self, client) -> None:
        assert client.get("/health").json() == {"status": "healthy"}
