"""
Audit Logging Service
"""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
import structlog

from gridportal.models import AuditLog, User

logger = structlog.get_logger()


class AuditLogger:
    """Centralized audit logging service."""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        user: Optional[User] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status: str = "success",
        error_message: Optional[str] = None
    ) -> AuditLog:
        """Create an audit log entry."""
        audit = AuditLog(
            user_id=user.id if user else None,
            username=user.username if user else None,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            status=status,
            error_message=error_message
        )

        self.db.add(audit)
        self.db.commit()

        # Also log to structured logger
        log_method = logger.info if status == "success" else logger.warning
        log_method(
            "audit_event",
            action=action,
            username=user.username if user else None,
            resource_type=resource_type,
            resource_id=resource_id,
            status=status
        )

        return audit

    def log_login(self, username: str, user: Optional[User] = None, success: bool = True):
        """Log login attempt."""
        return self.log(
            action="login",
            user=user if success else None,
            resource_type="auth",
            status="success" if success else "failure",
            details={"username": username}
        )

    def log_row_change(self, user: User, action: str, procedure_name: str,
                       row_id: Any, success: bool, error_code: Optional[str] = None,
                       message: Optional[str] = None):
        """Log a grid row create, update or delete."""
        return self.log(
            action=action,
            user=user,
            resource_type="grid",
            resource_id=row_id,
            details={"procedure_name": procedure_name, "error_code": error_code},
            status="success" if success else "failure",
            error_message=None if success else message
        )

    def log_export(self, user: User, procedure_name: str, export_format: str, row_count: int):
        """Log grid export."""
        return self.log(
            action="export",
            user=user,
            resource_type="grid",
            resource_id=procedure_name,
            details={"format": export_format, "row_count": row_count}
        )
