"""
Token family persistence.

Every mutation is a single statement keyed on family_id:
- advance() is a conditional UPDATE on (family_id, current_token), the
  compare-and-swap that serializes concurrent rotations of one family
- delete() / delete_for_user() / purge_expired() are plain DELETEs
Reads return detached FamilyRecord snapshots, refreshed from the database
on every call so a lost race is never hidden by the identity map.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update

from authority_store.db_storage import DBStorage
from authority_store.token_family import FamilyRecord, TokenFamily


class FamilyStore:
    def __init__(self, storage: DBStorage):
        self._storage = storage

    def create(self, family_id: str, user_id: str, token: str, absolute_expires_at: datetime) -> FamilyRecord:
        row = TokenFamily(
            family_id=family_id,
            user_id=user_id,
            current_token=token,
            previous_token=None,
            grace_expires_at=None,
            absolute_expires_at=absolute_expires_at,
        )
        with self._storage.transaction() as session:
            session.add(row)
        return FamilyRecord.from_row(row)

    def get(self, family_id: str) -> Optional[FamilyRecord]:
        with self._storage.transaction() as session:
            row = session.execute(
                select(TokenFamily)
                .where(TokenFamily.family_id == family_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            return FamilyRecord.from_row(row) if row is not None else None

    def advance(self, family_id: str, expected_current: str, new_current: str, grace_expires_at: datetime) -> bool:
        """
        Rotate the family one step if current_token still equals expected_current.
        Returns False when another writer got there first (or the row is gone).
        """
        stmt = (
            update(TokenFamily)
            .where(TokenFamily.family_id == family_id, TokenFamily.current_token == expected_current)
            .values(
                previous_token=expected_current,
                current_token=new_current,
                grace_expires_at=grace_expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        with self._storage.transaction() as session:
            result = session.execute(stmt)
        return result.rowcount == 1

    def delete(self, family_id: str) -> bool:
        stmt = delete(TokenFamily).where(TokenFamily.family_id == family_id).execution_options(synchronize_session=False)
        with self._storage.transaction() as session:
            result = session.execute(stmt)
        return result.rowcount > 0

    def delete_for_user(self, user_id: str) -> int:
        stmt = delete(TokenFamily).where(TokenFamily.user_id == user_id).execution_options(synchronize_session=False)
        with self._storage.transaction() as session:
            result = session.execute(stmt)
        return result.rowcount

    def purge_expired(self, now: datetime) -> int:
        """Remove every family past its absolute expiry (uses the expiry index)."""
        stmt = (
            delete(TokenFamily)
            .where(TokenFamily.absolute_expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        with self._storage.transaction() as session:
            result = session.execute(stmt)
        return result.rowcount
