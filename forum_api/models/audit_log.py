from sqlalchemy import Column, Integer, String, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from forum_api.database import Base


class AuditLog(Base):
    """One row per auth event. Never holds token strings or passwords."""
    __tablename__ = "audit_logs"

    id          = Column(Integer, primary_key=True, index=True)
    userId      = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action      = Column(String(20), nullable=False)        # SIGNUP | LOGIN | REFRESH | LOGOUT
    entityType  = Column(String(50), nullable=False)        # User | RefreshToken
    entityId    = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    createdAt   = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="audit_logs")

    def __repr__(self):
        return f"<AuditLog {self.action} user={self.userId} {self.entityType}#{self.entityId}>"
