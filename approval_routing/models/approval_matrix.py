"""
Approval Matrix Model
Company-wide ordered approval levels
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Text, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from approval_routing.config.database import Base


class ApprovalType(str, enum.Enum):
    """How the approvers of one level are evaluated"""
    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"


class ParallelRule(str, enum.Enum):
    """Satisfaction rule for parallel levels"""
    ANY = "ANY"
    ALL = "ALL"


class ApprovalMatrix(Base):
    """Approval matrix model"""
    __tablename__ = "approval_matrices"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # At most one active matrix per company
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    levels = relationship(
        "ApprovalMatrixLevel",
        back_populates="matrix",
        order_by="ApprovalMatrixLevel.level_number",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<ApprovalMatrix {self.name} (active={self.is_active})>"

    def enabled_levels(self) -> list:
        """Enabled levels in ascending order"""
        return sorted(
            [level for level in self.levels if level.enabled],
            key=lambda level: level.level_number
        )


class ApprovalMatrixLevel(Base):
    """One level of an approval matrix"""
    __tablename__ = "approval_matrix_levels"

    id = Column(Integer, primary_key=True, index=True)
    matrix_id = Column(Integer, ForeignKey("approval_matrices.id"), nullable=False)

    level_number = Column(Integer, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)
    approval_type = Column(Enum(ApprovalType), default=ApprovalType.SEQUENTIAL, nullable=False)
    parallel_rule = Column(Enum(ParallelRule), nullable=True)  # Only meaningful for PARALLEL

    # Specific users take precedence over roles when non-empty
    approver_role_ids = Column(JSON, default=list)
    approver_user_ids = Column(JSON, default=list)

    # Stored and returned as-is; not evaluated by the router
    conditions = Column(JSON, default=list)

    skip_allowed = Column(Boolean, default=False, nullable=False)

    matrix = relationship("ApprovalMatrix", back_populates="levels")

    def __repr__(self):
        return f"<ApprovalMatrixLevel L{self.level_number} {self.approval_type.value}>"
