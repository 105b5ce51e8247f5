"""
Audit Log Model
Tracks every approval state transition for compliance
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from datetime import datetime

from approval_routing.config.database import Base


class AuditLog(Base):
    """Audit log model"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # User who performed the action (None for system transitions)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Action details
    action = Column(String, nullable=False)  # e.g., "approval_initiated", "level_advanced"
    entity_type = Column(String, nullable=False)  # e.g., "approval_instance"
    entity_id = Column(Integer, nullable=True)

    # Details
    description = Column(Text, nullable=False)
    changes = Column(JSON, nullable=True)  # Before/after values

    # Related report
    report_id = Column(Integer, ForeignKey("expense_reports.id"), nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AuditLog {self.action} by User {self.user_id}>"
