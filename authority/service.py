"""
TokenAuthority: the operations exposed to the API layer.

register / login / refresh / logout / admit, plus the administrative
revoke_family / revoke_user_sessions / sweep / create_admin.

All collaborators are passed in explicitly. Every operation returns a
Result; backing-store failures (StoreUnavailable) are converted into a
SERVICE_UNAVAILABLE failure here and nowhere else.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import wraps
from typing import Callable, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from authority.credentials import CredentialVerifier
from authority.results import FailureKind, Result
from authority.rotation import DEFAULT_GRACE_WINDOW, RotationEngine, TokenPair
from authority.security import TokenCodec, hash_password, utcnow
from authority_store.db_storage import DBStorage
from authority_store.errors import StoreUnavailable
from authority_store.family_store import FamilyStore
from authority_store.revocation_cache import RevocationCache, build_revocation_cache
from authority_store.user import Role, User
from authority_store.user_store import UserStore, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    user: User
    family_id: str


@dataclass(frozen=True)
class LogoutReceipt:
    family_id: Optional[str]
    access_revoked: bool


@dataclass(frozen=True)
class SweepReport:
    families: int
    revocations: int


def store_guarded(fn):
    """Turn StoreUnavailable raised by a store into a SERVICE_UNAVAILABLE Result."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StoreUnavailable as exc:
            logger.error("%s failed: %s", fn.__name__, exc)
            return Result.fail(FailureKind.SERVICE_UNAVAILABLE, "service temporarily unavailable")

    return wrapper


class TokenAuthority:
    def __init__(
        self,
        codec: TokenCodec,
        users: UserStore,
        families: FamilyStore,
        revocations: RevocationCache,
        grace_window: timedelta = DEFAULT_GRACE_WINDOW,
        family_max_age: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.codec = codec
        self.users = users
        self.families = families
        self.revocations = revocations
        self.family_max_age = family_max_age or codec.refresh_ttl
        self._clock = clock
        self.verifier = CredentialVerifier(users)
        self.engine = RotationEngine(codec, families, users, grace_window=grace_window, clock=clock)

    @classmethod
    def from_config(
        cls,
        config: Mapping,
        storage: DBStorage,
        revocations: Optional[RevocationCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "TokenAuthority":
        """Wire an authority from a Flask-style config mapping."""
        codec = TokenCodec(
            access_secret=config["JWT_ACCESS_SECRET"],
            refresh_secret=config["JWT_REFRESH_SECRET"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            access_ttl=config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
            issuer=config.get("JWT_ISSUER", "token-authority"),
        )
        if revocations is None:
            revocations = build_revocation_cache(
                config.get("REVOCATION_BACKEND", "sql"),
                storage,
                redis_url=config.get("REDIS_URL"),
                timeout=config.get("STORE_TIMEOUT_SECONDS", 5.0),
                clock=clock,
            )
        return cls(
            codec=codec,
            users=UserStore(storage),
            families=FamilyStore(storage),
            revocations=revocations,
            grace_window=config.get("REFRESH_GRACE_WINDOW", DEFAULT_GRACE_WINDOW),
            family_max_age=config.get("FAMILY_MAX_AGE"),
            clock=clock,
        )

    @store_guarded
    def register(self, email: str, password: str, name: Optional[str] = None) -> Result:
        return self._create_user(email, password, name, Role.USER)

    @store_guarded
    def create_admin(self, email: str, password: str, name: Optional[str] = None) -> Result:
        return self._create_user(email, password, name, Role.ADMIN)

    def _create_user(self, email, password, name, role: Role) -> Result:
        email = normalize_email(email)
        if not email or not password:
            return Result.fail(FailureKind.BAD_REQUEST, "Email and password are required")
        if self.users.get_by_email(email) is not None:
            return Result.fail(FailureKind.CONFLICT, "Email already taken")
        try:
            user = self.users.create(email, hash_password(password), name=name, role=role)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            return Result.fail(FailureKind.CONFLICT, "Email already taken")
        logger.info("Registered user %s with role %s", user.id, role.value)
        return Result.success(user)

    @store_guarded
    def login(self, email: str, password: str) -> Result:
        verified = self.verifier.verify(email, password)
        if not verified.ok:
            return verified
        user: User = verified.value

        now = self._clock()
        family_id = str(uuid.uuid4())
        access = self.codec.issue_access(user.id, user.role_name, family_id)
        refresh = self.codec.issue_refresh(user.id, family_id)
        self.families.create(family_id, user.id, refresh.token, absolute_expires_at=now + self.family_max_age)
        self.users.touch_last_login(user, now)
        logger.info("User %s logged in, family %s", user.id, family_id)
        return Result.success(LoginResult(tokens=TokenPair(access=access, refresh=refresh), user=user, family_id=family_id))

    @store_guarded
    def refresh(self, refresh_token: str) -> Result:
        if not refresh_token:
            return Result.fail(FailureKind.BAD_REQUEST, "refresh_token is required")
        return self.engine.rotate(refresh_token)

    @store_guarded
    def logout(self, refresh_token: str, access_token: Optional[str] = None) -> Result:
        """
        End a session lineage. Always succeeds unless a backing store is down.
        - a decodable access token is blacklisted for its remaining lifetime
        - a refresh token with a valid signature (expired or not) deletes its family
        - an indecipherable refresh token is treated as already logged out
        """
        access_revoked = False
        if access_token:
            claims = self.codec.verify_access(access_token)
            if claims.ok:
                # Rounded up so the entry never lapses before the token does
                remaining = math.ceil((claims.value.expires_at - self._clock()).total_seconds())
                access_revoked = self.revocations.revoke(access_token, remaining)

        decoded = self.codec.verify_refresh(refresh_token, allow_expired=True)
        if not decoded.ok:
            logger.info("Logout with undecodable refresh token (%s); nothing to revoke", decoded.failure.kind.value)
            return Result.success(LogoutReceipt(family_id=None, access_revoked=access_revoked))

        family_id = decoded.value.family_id
        if self.families.delete(family_id):
            logger.info("Family %s terminated by logout", family_id)
        return Result.success(LogoutReceipt(family_id=family_id, access_revoked=access_revoked))

    @store_guarded
    def admit(self, access_token: Optional[str]) -> Result:
        if not access_token:
            return Result.fail(FailureKind.TOKEN_INVALID, "Access token is missing")
        claims = self.codec.verify_access(access_token)
        if not claims.ok:
            return claims
        if self.revocations.is_revoked(access_token):
            return Result.fail(FailureKind.TOKEN_REVOKED, "Token is revoked")
        family_id = claims.value.family_id
        if family_id:
            family = self.families.get(family_id)
            if family is None or family.is_expired(self._clock()):
                return Result.fail(FailureKind.FAMILY_REVOKED, "family revoked")
        return claims

    @store_guarded
    def revoke_family(self, family_id: str) -> Result:
        return Result.success(self.families.delete(family_id))

    @store_guarded
    def revoke_user_sessions(self, user_id: str) -> Result:
        count = self.families.delete_for_user(user_id)
        logger.info("Revoked %d session(s) of user %s", count, user_id)
        return Result.success(count)

    @store_guarded
    def sweep(self, now: Optional[datetime] = None) -> Result:
        """Purge families past absolute expiry and expired revocation rows."""
        families = self.families.purge_expired(now or self._clock())
        revocations = self.revocations.purge_expired()
        return Result.success(SweepReport(families=families, revocations=revocations))

    @store_guarded
    def get_user(self, user_id: str) -> Result:
        user = self.users.get(user_id)
        if user is None:
            return Result.fail(FailureKind.TOKEN_INVALID, "User not found")
        return Result.success(user)
