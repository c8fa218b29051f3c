"""
TokenFamily model: one row per login session lineage.
Fields:
- family_id (primary key, uuid4, never reused)
- user_id (String(36)) - FK to users.id
- current_token: the refresh token accepted for the next rotation
- previous_token / grace_expires_at: the token superseded by the last
  rotation and the moment it stops being honored (both set or both null)
- absolute_expires_at: hard expiry of the lineage, indexed for sweeping
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship

from authority.security import as_utc
from authority_store.base_model import Base, TimestampMixin


class TokenFamily(TimestampMixin, Base):
    __tablename__ = "token_families"

    family_id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    current_token = Column(Text, nullable=False)
    previous_token = Column(Text, nullable=True)
    grace_expires_at = Column(DateTime(timezone=True), nullable=True)
    absolute_expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    user = relationship("User", back_populates="families")

    __table_args__ = (
        CheckConstraint(
            "(previous_token IS NULL) = (grace_expires_at IS NULL)",
            name="ck_family_grace_pair",
        ),
    )

    def __repr__(self):
        return f"<TokenFamily family_id={self.family_id} user_id={self.user_id}>"


@dataclass(frozen=True)
class FamilyRecord:
    """Detached snapshot of a TokenFamily row, as read by the rotation engine."""

    family_id: str
    user_id: str
    current_token: str
    previous_token: Optional[str]
    grace_expires_at: Optional[datetime]
    absolute_expires_at: datetime

    @classmethod
    def from_row(cls, row: TokenFamily) -> "FamilyRecord":
        return cls(
            family_id=row.family_id,
            user_id=row.user_id,
            current_token=row.current_token,
            previous_token=row.previous_token,
            grace_expires_at=as_utc(row.grace_expires_at) if row.grace_expires_at else None,
            absolute_expires_at=as_utc(row.absolute_expires_at),
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.absolute_expires_at

    def in_grace(self, now: datetime) -> bool:
        return self.grace_expires_at is not None and now < self.grace_expires_at
