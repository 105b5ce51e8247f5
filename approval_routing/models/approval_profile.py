"""
Employee Approval Profile Model
Personalized approver chain that replaces the company matrix for one employee
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, JSON, Float
from datetime import datetime

from approval_routing.config.database import Base


class EmployeeApprovalProfile(Base):
    """Employee approval profile model"""
    __tablename__ = "employee_approval_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Ordered list of {"level", "mode", "approvalType", "roles", "approverUserIds"}
    approver_chain = Column(JSON, nullable=False, default=list)

    source = Column(String, default="manual", nullable=False)  # manual, ai
    confidence_score = Column(Float, nullable=True)
    reasoning_summary = Column(Text, nullable=True)

    active = Column(Boolean, default=True, index=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<EmployeeApprovalProfile user={self.user_id} v{self.version} (active={self.active})>"
