"""
Notification Model
Represents notifications queued for users
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from approval_routing.config.database import Base


class NotificationType(str, enum.Enum):
    """Notification types"""
    APPROVAL_REQUIRED = "approval_required"
    REPORT_APPROVED = "report_approved"
    REPORT_REJECTED = "report_rejected"
    CHANGES_REQUESTED = "changes_requested"


class Notification(Base):
    """Notification model"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # User
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Notification details
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)

    # Related report
    report_id = Column(Integer, ForeignKey("expense_reports.id"), nullable=True)

    # Status
    is_read = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    read_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User")

    def __repr__(self):
        return f"<Notification {self.type.value} - User {self.user_id}>"
