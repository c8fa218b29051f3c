from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from authority_store.base_model import Base


class RevokedToken(Base):
    """Access token revoked before its natural expiry.

    token_digest is the SHA-256 of the token value; rows past expires_at
    are ignored on read and purged by the sweep.
    """
    __tablename__ = "revoked_tokens"

    token_digest = Column(String(64), primary_key=True)
    revoked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<RevokedToken digest={self.token_digest[:12]}>"
