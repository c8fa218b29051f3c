from __future__ import annotations

from authority.results import FailureKind, Result
from authority.security import verify_password
from authority_store.user_store import UserStore, normalize_email

INVALID_CREDENTIALS_MESSAGE = "invalid email or password"


class CredentialVerifier:
    """Checks an email/password pair against the stored Argon2 hash.

    Unknown email and wrong password produce the same failure so the
    response shape does not reveal whether an account exists.
    """

    def __init__(self, users: UserStore):
        self._users = users

    def verify(self, email: str, password: str) -> Result:
        if not email or not password:
            return Result.fail(FailureKind.BAD_REQUEST, "email and password are required")

        user = self._users.get_by_email(normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            return Result.fail(FailureKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)
        return Result.success(user)
