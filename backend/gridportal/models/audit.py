"""
Audit Log Model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.sql import func

from gridportal.database import Base


class AuditLog(Base):
    """Audit log for grid mutations, authentication and administration."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Actor
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), index=True)
    username = Column(String(100))  # Denormalized for historical tracking

    # Action
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), index=True)  # 'grid', 'auth', 'role', 'registry', 'scaffold'
    resource_id = Column(String(200))

    # Details
    details = Column(JSON)

    # Status
    status = Column(String(20), default='success')  # 'success', 'failure'
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
