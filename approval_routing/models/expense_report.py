"""
Expense Report Model
Reports submitted for approval and their resolved approver records
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from approval_routing.config.database import Base
from approval_routing.config.settings import settings


class ExpenseReportStatus(str, enum.Enum):
    """Expense report status"""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class ApproverAction(str, enum.Enum):
    """Decisions an approver can record"""
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


class ExpenseReport(Base):
    """Expense report model"""
    __tablename__ = "expense_reports"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Submitting employee
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Budget holders
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    cost_centre_id = Column(Integer, ForeignKey("cost_centres.id"), nullable=True)

    # Report details
    name = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    total_amount = Column(Float, default=0.0, nullable=False)
    currency = Column(String, default=settings.DEFAULT_CURRENCY)

    # Status
    status = Column(Enum(ExpenseReportStatus), default=ExpenseReportStatus.DRAFT, nullable=False)
    current_approval_level = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    settlement_requested_at = Column(DateTime, nullable=True)

    # Optimistic lock, shared unit with the approval instance
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    employee = relationship("User", foreign_keys=[user_id])
    project = relationship("Project")
    cost_centre = relationship("CostCentre")
    approvers = relationship(
        "ReportApprover",
        back_populates="report",
        order_by=lambda: [ReportApprover.level, ReportApprover.id],
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ExpenseReport {self.id} - {self.status.value}>"

    def approvers_at(self, level: int) -> list:
        """Approver records of one level"""
        return [approver for approver in self.approvers if approver.level == level]


class ReportApprover(Base):
    """One approver slot in a report's resolved chain"""
    __tablename__ = "report_approvers"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("expense_reports.id"), nullable=False, index=True)

    level = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Display label, snapshotted when the chain is built
    role = Column(String, nullable=False)

    # Decision
    decided_at = Column(DateTime, nullable=True)
    action = Column(Enum(ApproverAction), nullable=True)
    comment = Column(Text, nullable=True)

    # Set when a parallel ANY level completed without this approver
    skipped_at = Column(DateTime, nullable=True)

    # Budget-triggered approvals
    is_additional_approval = Column(Boolean, default=False, nullable=False)
    approval_rule_id = Column(Integer, ForeignKey("approval_rules.id"), nullable=True)
    trigger_reason = Column(Text, nullable=True)

    report = relationship("ExpenseReport", back_populates="approvers")
    user = relationship("User")

    def __repr__(self):
        return f"<ReportApprover L{self.level} user={self.user_id}>"

    @property
    def is_open(self) -> bool:
        """Still waiting for this approver"""
        return self.decided_at is None and self.skipped_at is None
