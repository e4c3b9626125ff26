"""
Import all models here so that:
1. Alembic can auto-detect them when generating migrations
2. Relationships between models resolve correctly

Order matters: import parent tables before child tables.
"""

from forum_api.models.user import User
from forum_api.models.refresh_token import RefreshToken
from forum_api.models.audit_log import AuditLog

__all__ = [
    "User",
    "RefreshToken",
    "AuditLog",
]
