"""
Revocation cache: access tokens invalidated before their natural expiry.

Two interchangeable backends:
- SQLRevocationCache: the revoked_tokens table; expiry enforced on read,
  rows removed by purge_expired()
- RedisRevocationCache: one key per token with a native TTL

Keys are the SHA-256 digest of the token value, so equal tokens map to
equal keys without storing bearer credentials at rest.
"""
from __future__ import annotations

import hashlib
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

import redis
from sqlalchemy import delete, select

from authority.security import utcnow
from authority_store.db_storage import DBStorage
from authority_store.errors import StoreUnavailable
from authority_store.revoked_token import RevokedToken

logger = logging.getLogger(__name__)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class RevocationCache:
    """Interface shared by the backends."""

    def revoke(self, token: str, ttl_seconds: float) -> bool:
        raise NotImplementedError

    def is_revoked(self, token: str) -> bool:
        raise NotImplementedError

    def purge_expired(self) -> int:
        return 0


class SQLRevocationCache(RevocationCache):
    def __init__(self, storage: DBStorage, clock: Callable[[], datetime] = utcnow):
        self._storage = storage
        self._clock = clock

    def revoke(self, token: str, ttl_seconds: float) -> bool:
        """Record the token until now + ttl_seconds. Non-positive TTLs are ignored."""
        if ttl_seconds <= 0:
            return False
        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        with self._storage.transaction() as session:
            session.merge(RevokedToken(token_digest=token_digest(token), expires_at=expires_at))
        return True

    def is_revoked(self, token: str) -> bool:
        with self._storage.transaction() as session:
            found = session.execute(
                select(RevokedToken.token_digest).where(
                    RevokedToken.token_digest == token_digest(token),
                    RevokedToken.expires_at > self._clock(),
                )
            ).first()
        return found is not None

    def purge_expired(self) -> int:
        stmt = (
            delete(RevokedToken)
            .where(RevokedToken.expires_at <= self._clock())
            .execution_options(synchronize_session=False)
        )
        with self._storage.transaction() as session:
            result = session.execute(stmt)
        return result.rowcount


class RedisRevocationCache(RevocationCache):
    KEY_PREFIX = "auth:revoked:"

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, socket_timeout: float = 5.0) -> "RedisRevocationCache":
        client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token_digest(token)}"

    def revoke(self, token: str, ttl_seconds: float) -> bool:
        if ttl_seconds <= 0:
            return False
        try:
            self.client.set(self._key(token), "1", ex=math.ceil(ttl_seconds))
        except redis.RedisError as exc:
            logger.error("Redis revoke failed: %s", exc.__class__.__name__)
            raise StoreUnavailable("revocation cache unavailable") from exc
        return True

    def is_revoked(self, token: str) -> bool:
        try:
            return bool(self.client.exists(self._key(token)))
        except redis.RedisError as exc:
            logger.error("Redis lookup failed: %s", exc.__class__.__name__)
            raise StoreUnavailable("revocation cache unavailable") from exc


def build_revocation_cache(
    backend: str,
    storage: DBStorage,
    redis_url: Optional[str] = None,
    timeout: float = 5.0,
    clock: Callable[[], datetime] = utcnow,
) -> RevocationCache:
    backend = (backend or "sql").lower()
    if backend == "redis":
        if not redis_url:
            raise ValueError("REDIS_URL is required for the redis revocation backend")
        return RedisRevocationCache.from_url(redis_url, socket_timeout=timeout)
    if backend == "sql":
        return SQLRevocationCache(storage, clock=clock)
    raise ValueError(f"Unknown revocation backend: {backend}")
