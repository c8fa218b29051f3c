"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT (TokenCodec)
- JTI generation for token identifiers

Access and refresh tokens are signed with distinct secrets and carry a
"type" claim, so one can never be accepted where the other is expected.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from authority.results import FailureKind, Result

ph = PasswordHasher()

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    role: str
    expires_at: datetime
    jti: str
    family_id: Optional[str] = None


@dataclass(frozen=True)
class RefreshClaims:
    user_id: str
    family_id: str
    expires_at: datetime
    jti: str


class TokenCodec:
    """Signs and verifies access and refresh tokens.

    Holds only configuration; safe to share between threads.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: str = "token-authority",
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("access and refresh secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh tokens must use distinct secrets")
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer

    def _encode(self, token_type: str, subject: str, ttl: timedelta, extra: Dict[str, Any]) -> IssuedToken:
        now = utcnow()
        exp = now + ttl
        payload = {
            "iss": self.issuer,
            "sub": str(subject),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
            "type": token_type,
            "jti": generate_jti(),
        }
        payload.update(extra)
        token = jwt.encode(payload, self._secrets[token_type], algorithm=self.algorithm)
        return IssuedToken(token=token, expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc))

    def issue_access(self, user_id: str, role: str, family_id: Optional[str] = None) -> IssuedToken:
        extra = {"role": role}
        if family_id:
            extra["fid"] = family_id
        return self._encode(ACCESS, user_id, self.access_ttl, extra)

    def issue_refresh(self, user_id: str, family_id: str) -> IssuedToken:
        return self._encode(REFRESH, user_id, self.refresh_ttl, {"fid": family_id})

    def _decode(self, token: str, expected_type: str, verify_exp: bool = True) -> Result:
        """
        Decode and validate a JWT of the expected type.
        Returns a failed Result on invalid signature, expiry or wrong type.
        """
        if not token or not isinstance(token, str):
            return Result.fail(FailureKind.TOKEN_INVALID, "Token missing")
        try:
            decoded = jwt.decode(
                token,
                self._secrets[expected_type],
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "jti"], "verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError:
            return Result.fail(FailureKind.TOKEN_EXPIRED, "Token expired")
        except jwt.InvalidTokenError as exc:
            return Result.fail(FailureKind.TOKEN_INVALID, f"Invalid token: {exc}")

        if decoded.get("type") != expected_type:
            return Result.fail(FailureKind.TOKEN_INVALID, "Wrong token type")
        return Result.success(decoded)

    def verify_access(self, token: str) -> Result:
        result = self._decode(token, ACCESS)
        if not result.ok:
            return result
        decoded = result.value
        role = decoded.get("role")
        if not role:
            return Result.fail(FailureKind.TOKEN_INVALID, "Invalid token: missing role")
        return Result.success(
            AccessClaims(
                user_id=decoded["sub"],
                role=role,
                expires_at=datetime.fromtimestamp(decoded["exp"], tz=timezone.utc),
                jti=decoded["jti"],
                family_id=decoded.get("fid"),
            )
        )

    def verify_refresh(self, token: str, allow_expired: bool = False) -> Result:
        result = self._decode(token, REFRESH, verify_exp=not allow_expired)
        if not result.ok:
            return result
        decoded = result.value
        family_id = decoded.get("fid")
        if not family_id:
            return Result.fail(FailureKind.TOKEN_INVALID, "Invalid token: missing family")
        return Result.success(
            RefreshClaims(
                user_id=decoded["sub"],
                family_id=family_id,
                expires_at=datetime.fromtimestamp(decoded["exp"], tz=timezone.utc),
                jti=decoded["jti"],
            )
        )
