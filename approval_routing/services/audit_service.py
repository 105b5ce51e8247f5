"""
Audit Service
Persists approval state transitions to the audit log
"""

from sqlalchemy.orm import Session
from typing import List, Optional

from approval_routing.models.audit_log import AuditLog
from approval_routing.utils.logger import setup_logger, log_audit

logger = setup_logger()


class AuditService:
    """Service for the approval audit trail"""

    def handle(self, db: Session, request) -> None:
        """Side effect handler: write one audit entry per request"""
        self.record(
            db,
            action=request.event,
            description=request.payload.get("description", request.event),
            user_id=request.actor_id,
            report_id=request.report_id,
            entity_type=request.payload.get("entity_type", "approval_instance"),
            entity_id=request.payload.get("entity_id"),
            changes=request.payload.get("changes")
        )

    def record(
        self,
        db: Session,
        action: str,
        description: str,
        user_id: Optional[int] = None,
        report_id: Optional[int] = None,
        entity_type: str = "approval_instance",
        entity_id: Optional[int] = None,
        changes: Optional[dict] = None
    ) -> AuditLog:
        """
        Create an audit log entry and mirror it to the audit log file

        Args:
            db: Database session
            action: Action performed (e.g. "approval_initiated", "level_advanced")
            description: Human-readable description
            user_id: Acting user, None for system transitions
            report_id: Related report
            entity_type: Type of the affected entity
            entity_id: Id of the affected entity
            changes: Before/after values

        Returns:
            AuditLog: Created entry
        """
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            changes=changes,
            report_id=report_id
        )
        db.add(entry)
        db.flush()

        log_audit(user_id, action, description, report_id=report_id)
        return entry

    def for_report(self, db: Session, report_id: int) -> List[AuditLog]:
        """Audit entries of a report in the order they were written"""
        return db.query(AuditLog).filter(AuditLog.report_id == report_id).order_by(AuditLog.id).all()


# Create singleton instance
audit_service = AuditService()
