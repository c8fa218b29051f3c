"""
Outcome types shared by every Token Authority operation.

Expected outcomes (bad password, expired token, reuse detected, ...) are
returned as a Result carrying a Failure from a closed set of kinds.
Callers branch on ``failure.kind``; exceptions are kept for the unexpected.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class FailureKind(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    FAMILY_REVOKED = "FAMILY_REVOKED"
    REUSE_DETECTED = "REUSE_DETECTED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


FAILURE_STATUS = {
    FailureKind.INVALID_CREDENTIALS: 401,
    FailureKind.TOKEN_INVALID: 401,
    FailureKind.TOKEN_EXPIRED: 401,
    FailureKind.TOKEN_REVOKED: 401,
    FailureKind.FAMILY_REVOKED: 401,
    FailureKind.REUSE_DETECTED: 403,
    FailureKind.FORBIDDEN: 403,
    FailureKind.CONFLICT: 409,
    FailureKind.BAD_REQUEST: 400,
    FailureKind.SERVICE_UNAVAILABLE: 503,
}


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str

    @property
    def status(self) -> int:
        return FAILURE_STATUS[self.kind]


@dataclass(frozen=True)
class Result:
    """Either a value or a Failure, never both."""

    value: Any = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, message: str) -> "Result":
        return cls(failure=Failure(kind, message))

    def unwrap(self) -> Any:
        """Return the value; raise if this is a failure (for tests and scripts)."""
        if self.failure is not None:
            raise ValueError(f"{self.failure.kind.value}: {self.failure.message}")
        return self.value
