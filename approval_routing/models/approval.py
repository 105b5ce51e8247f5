"""
Approval Model
Approval instance tracking a report's progress through its resolved chain
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Text, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from approval_routing.config.database import Base


class ApprovalStatus(str, enum.Enum):
    """Approval instance status"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class HistoryStatus(str, enum.Enum):
    """Status recorded on a history entry"""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    SKIPPED = "SKIPPED"


class ChainSource(str, enum.Enum):
    """Where the base chain of an instance came from"""
    PROFILE = "profile"
    MATRIX = "matrix"
    MAPPING = "mapping"
    HIERARCHY = "hierarchy"
    EXPLICIT = "explicit"


class ApprovalInstance(Base):
    """Approval instance model"""
    __tablename__ = "approval_instances"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # Request under approval
    request_id = Column(Integer, ForeignKey("expense_reports.id"), nullable=False, index=True)
    request_type = Column(String, default="EXPENSE_REPORT", nullable=False)

    # Snapshot of the configuration used (matrix or profile id) and per-level modes
    matrix_id = Column(Integer, nullable=True)
    chain_source = Column(Enum(ChainSource), nullable=False)
    chain_snapshot = Column(JSON, nullable=False, default=list)

    # Progress
    current_level = Column(Integer, nullable=True)
    status = Column(Enum(ApprovalStatus), default=ApprovalStatus.PENDING, nullable=False, index=True)

    # Set when changes were requested; the report must be resubmitted
    superseded = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    # Optimistic lock
    version = Column(Integer, nullable=False, default=1)

    # Relationships
    report = relationship("ExpenseReport")
    history = relationship(
        "ApprovalHistory",
        back_populates="instance",
        order_by="ApprovalHistory.id",
        cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ApprovalInstance report={self.request_id} L{self.current_level} - {self.status.value}>"

    @property
    def is_live(self) -> bool:
        """Accepts decisions"""
        return self.status == ApprovalStatus.PENDING and not self.superseded

    def level_config(self, level_number: int) -> dict:
        """Snapshot entry for one level"""
        for entry in self.chain_snapshot or []:
            if entry["level_number"] == level_number:
                return entry
        return {}

    def level_numbers(self) -> list:
        """Level numbers of the resolved chain in ascending order"""
        return sorted(entry["level_number"] for entry in self.chain_snapshot or [])


class ApprovalHistory(Base):
    """Append-only decision history of an approval instance"""
    __tablename__ = "approval_history"

    id = Column(Integer, primary_key=True, index=True)
    instance_id = Column(Integer, ForeignKey("approval_instances.id"), nullable=False, index=True)

    level_number = Column(Integer, nullable=False)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(Enum(HistoryStatus), nullable=False)
    comments = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow)

    instance = relationship("ApprovalInstance", back_populates="history")

    def __repr__(self):
        return f"<ApprovalHistory L{self.level_number} {self.status.value}>"
