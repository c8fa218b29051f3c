"""
Refresh-token rotation with reuse detection.

For an incoming refresh token the engine decides one of:
- rotate: the token is the family's current_token; advance the family one
  step (previous <- current, current <- new, grace window opened)
- grace: the token is the previous_token and the grace window is still
  open; mint a new access token, hand back the existing current_token
- theft: anything else, or a previous_token presented after the grace
  window; the whole family is deleted before the failure is returned

The advance is a compare-and-swap on current_token. Losing that race once
is expected (two requests carrying the same token) and is resolved by
re-reading the family and classifying again.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from authority.results import FailureKind, Result
from authority.security import IssuedToken, RefreshClaims, TokenCodec, utcnow
from authority_store.family_store import FamilyStore
from authority_store.token_family import FamilyRecord
from authority_store.user_store import UserStore

logger = logging.getLogger(__name__)

DEFAULT_GRACE_WINDOW = timedelta(seconds=60)
CAS_ATTEMPTS = 2


@dataclass(frozen=True)
class TokenPair:
    access: IssuedToken
    refresh: IssuedToken
    rotated: bool = True

    @property
    def access_token(self) -> str:
        return self.access.token

    @property
    def refresh_token(self) -> str:
        return self.refresh.token


def _same_token(presented: str, stored: Optional[str]) -> bool:
    if stored is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


class RotationEngine:
    def __init__(
        self,
        codec: TokenCodec,
        families: FamilyStore,
        users: UserStore,
        grace_window: timedelta = DEFAULT_GRACE_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._codec = codec
        self._families = families
        self._users = users
        self.grace_window = grace_window
        self._clock = clock

    def rotate(self, refresh_token: str) -> Result:
        """Exchange a refresh token for a new pair. Raises StoreUnavailable on backend failure."""
        decoded = self._codec.verify_refresh(refresh_token)
        if not decoded.ok:
            return Result.fail(decoded.failure.kind, "invalid refresh token")
        claims: RefreshClaims = decoded.value

        for attempt in range(CAS_ATTEMPTS):
            now = self._clock()
            family = self._families.get(claims.family_id)
            if family is None:
                return Result.fail(FailureKind.FAMILY_REVOKED, "family revoked")
            if family.is_expired(now):
                self._families.delete(family.family_id)
                return Result.fail(FailureKind.FAMILY_REVOKED, "family revoked")

            if _same_token(refresh_token, family.current_token):
                result = self._advance(family, refresh_token, now)
                if result is not None:
                    return result
                logger.info(
                    "Rotation race lost for family %s (attempt %d), re-reading",
                    family.family_id, attempt + 1,
                )
                continue

            if _same_token(refresh_token, family.previous_token):
                if family.in_grace(now):
                    return self._grace(family)
                return self._kill(family, "reuse outside grace period")

            return self._kill(family, "reuse detected")

        logger.warning("Rotation for family %s kept losing the race", claims.family_id)
        return Result.fail(FailureKind.SERVICE_UNAVAILABLE, "concurrent rotation in progress, retry")

    def _role_for(self, family: FamilyRecord) -> Optional[str]:
        user = self._users.get(family.user_id)
        return user.role_name if user is not None else None

    def _advance(self, family: FamilyRecord, presented: str, now: datetime) -> Optional[Result]:
        role = self._role_for(family)
        if role is None:
            self._families.delete(family.family_id)
            return Result.fail(FailureKind.FAMILY_REVOKED, "family revoked")

        new_refresh = self._codec.issue_refresh(family.user_id, family.family_id)
        advanced = self._families.advance(
            family.family_id,
            expected_current=presented,
            new_current=new_refresh.token,
            grace_expires_at=now + self.grace_window,
        )
        if not advanced:
            return None
        access = self._codec.issue_access(family.user_id, role, family.family_id)
        return Result.success(TokenPair(access=access, refresh=new_refresh, rotated=True))

    def _grace(self, family: FamilyRecord) -> Result:
        role = self._role_for(family)
        if role is None:
            self._families.delete(family.family_id)
            return Result.fail(FailureKind.FAMILY_REVOKED, "family revoked")
        access = self._codec.issue_access(family.user_id, role, family.family_id)
        # The refresh token's own expiry is not stored on the family; read it back from the token.
        current = self._codec.verify_refresh(family.current_token, allow_expired=True)
        expires_at = current.value.expires_at if current.ok else family.absolute_expires_at
        return Result.success(
            TokenPair(
                access=access,
                refresh=IssuedToken(token=family.current_token, expires_at=expires_at),
                rotated=False,
            )
        )

    def _kill(self, family: FamilyRecord, reason: str) -> Result:
        self._families.delete(family.family_id)
        logger.warning(
            "Refresh token reuse (%s): family %s of user %s terminated",
            reason, family.family_id, family.user_id,
        )
        return Result.fail(FailureKind.REUSE_DETECTED, reason)
