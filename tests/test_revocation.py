"""Revocation cache backends."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from authority_store.errors import StoreUnavailable
from authority_store.revocation_cache import (
    RedisRevocationCache,
    SQLRevocationCache,
    build_revocation_cache,
    token_digest,
)


class TestSQLRevocationCache:
    def test_revoked_until_ttl_elapses(self, revocations, clock):
        assert revocations.revoke("token-a", 30)

        assert revocations.is_revoked("token-a")
        assert not revocations.is_revoked("token-b")
        clock.advance(seconds=29)
        assert revocations.is_revoked("token-a")
        clock.advance(seconds=1)
        assert not revocations.is_revoked("token-a")

    def test_non_positive_ttl_is_ignored(self, revocations):
        assert not revocations.revoke("token-a", 0)
        assert not revocations.revoke("token-a", -10)
        assert not revocations.is_revoked("token-a")

    def test_revoking_twice_extends_the_entry(self, revocations, clock):
        revocations.revoke("token-a", 10)
        revocations.revoke("token-a", 100)
        clock.advance(seconds=50)
        assert revocations.is_revoked("token-a")

    def test_purge_only_removes_expired(self, revocations, clock):
        revocations.revoke("short", 10)
        revocations.revoke("long", 1000)
        clock.advance(seconds=11)

        assert revocations.purge_expired() == 1
        assert revocations.is_revoked("long")

    def test_database_errors_become_store_unavailable(self, storage, clock):
        cache = SQLRevocationCache(storage, clock=clock)
        storage.get_session().remove()
        # Dropping the table makes every statement fail at the database
        with storage.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE revoked_tokens")

        with pytest.raises(StoreUnavailable):
            cache.is_revoked("token-a")


class TestRedisRevocationCache:
    def test_revoke_sets_a_key_with_ttl(self):
        client = MagicMock()
        cache = RedisRevocationCache(client)

        assert cache.revoke("token-a", 42)

        client.set.assert_called_once_with(f"auth:revoked:{token_digest('token-a')}", "1", ex=42)

    def test_fractional_ttl_is_rounded_up(self):
        client = MagicMock()
        RedisRevocationCache(client).revoke("token-a", 41.2)

        client.set.assert_called_once_with(f"auth:revoked:{token_digest('token-a')}", "1", ex=42)

    def test_non_positive_ttl_never_reaches_redis(self):
        client = MagicMock()
        cache = RedisRevocationCache(client)

        assert not cache.revoke("token-a", 0)
        client.set.assert_not_called()

    def test_is_revoked_checks_key_existence(self):
        client = MagicMock()
        client.exists.return_value = 1
        cache = RedisRevocationCache(client)

        assert cache.is_revoked("token-a")
        client.exists.assert_called_once_with(f"auth:revoked:{token_digest('token-a')}")

        client.exists.return_value = 0
        assert not cache.is_revoked("token-a")

    def test_redis_errors_become_store_unavailable(self):
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("down")
        client.exists.side_effect = redis.TimeoutError("slow")
        cache = RedisRevocationCache(client)

        with pytest.raises(StoreUnavailable):
            cache.revoke("token-a", 10)
        with pytest.raises(StoreUnavailable):
            cache.is_revoked("token-a")

    def test_purge_is_left_to_redis(self):
        assert RedisRevocationCache(MagicMock()).purge_expired() == 0


class TestBuildRevocationCache:
    def test_sql_backend(self, storage):
        assert isinstance(build_revocation_cache("sql", storage), SQLRevocationCache)

    def test_redis_backend_needs_a_url(self, storage):
        with pytest.raises(ValueError):
            build_revocation_cache("redis", storage)

    def test_redis_backend(self, storage):
        cache = build_revocation_cache("redis", storage, redis_url="redis://localhost:6379/0", timeout=0.5)
        assert isinstance(cache, RedisRevocationCache)

    def test_unknown_backend(self, storage):
        with pytest.raises(ValueError):
            build_revocation_cache("memcached", storage)

    def test_digest_is_stable_and_hides_the_token(self):
        assert token_digest("token-a") == token_digest("token-a")
        assert "token-a" not in token_digest("token-a")
        assert len(token_digest("token-a")) == 64
