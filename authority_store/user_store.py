"""
User-record collaborator: the narrow set of calls the authority needs.
create / get / get_by_email / touch_last_login. Listing, pagination and
profile editing live elsewhere.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select

from authority_store.db_storage import DBStorage
from authority_store.user import Role, User


def normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


class UserStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def create(self, email: str, password_hash: str, name: Optional[str] = None, role: Role = Role.USER) -> User:
        """Insert a user. Raises sqlalchemy IntegrityError on duplicate email."""
        user = User(email=normalize_email(email), password_hash=password_hash, name=name, role=role)
        with self._storage.transaction() as session:
            session.add(user)
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._storage.transaction() as session:
            return session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        with self._storage.transaction() as session:
            return session.execute(
                select(User).where(User.email == normalize_email(email))
            ).scalar_one_or_none()

    def touch_last_login(self, user: User, when: datetime) -> None:
        with self._storage.transaction() as session:
            user.last_login = when
            session.add(user)
