"""
Approval Rule Model
Budget thresholds that add an approver to a report's chain
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Text, Boolean
from datetime import datetime
import enum

from approval_routing.config.database import Base
from approval_routing.models.user import UserRole


class ApprovalRuleTriggerType(str, enum.Enum):
    """What a rule compares against its threshold"""
    REPORT_AMOUNT_EXCEEDS = "REPORT_AMOUNT_EXCEEDS"
    PROJECT_BUDGET_EXCEEDS = "PROJECT_BUDGET_EXCEEDS"
    COST_CENTRE_BUDGET_EXCEEDS = "COST_CENTRE_BUDGET_EXCEEDS"


class ApprovalRule(Base):
    """Approval rule model"""
    __tablename__ = "approval_rules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    trigger_type = Column(Enum(ApprovalRuleTriggerType), nullable=False)
    threshold_value = Column(Float, nullable=True)  # Amount for REPORT_AMOUNT_EXCEEDS
    threshold_percentage = Column(Float, nullable=True)  # Budget percentage; falls back to the budget holder's

    # Approver resolution, first set wins: specific user, custom role, system role
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approver_role_id = Column(Integer, ForeignKey("roles.id"), nullable=True)
    approver_role = Column(Enum(UserRole), nullable=True)

    active = Column(Boolean, default=True, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ApprovalRule {self.trigger_type.value} (active={self.active})>"
