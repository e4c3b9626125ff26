from sqlalchemy import Column, Integer, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from forum_api.database import Base


class RefreshToken(Base):
    """
    One outstanding refresh credential.

    Usable only while revokedAt is NULL and expiresAt is in the future.
    Rows are revoked on rotation and logout, never deleted.
    """
    __tablename__ = "refresh_tokens"

    id        = Column(Integer, primary_key=True, index=True)
    token     = Column(Text, nullable=False, unique=True)
    userId    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False)
    revokedAt = Column(TIMESTAMP(timezone=True), nullable=True)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken id={self.id} userId={self.userId} revokedAt={self.revokedAt}>"
