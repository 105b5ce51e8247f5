"""
Budget Models
Projects and cost centres whose spend can trigger additional approvals
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Boolean
from datetime import datetime

from approval_routing.config.database import Base


class BudgetHolderMixin:
    """Budget figures shared by projects and cost centres"""

    budget = Column(Float, nullable=True)
    spent_amount = Column(Float, default=0.0, nullable=False)
    threshold_percentage = Column(Float, default=100.0, nullable=False)

    def projected_spend(self, amount: float) -> float:
        """Spend after adding a report total"""
        return (self.spent_amount or 0.0) + (amount or 0.0)


class Project(BudgetHolderMixin, Base):
    """Project model"""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Project {self.name}>"


class CostCentre(BudgetHolderMixin, Base):
    """Cost centre model"""
    __tablename__ = "cost_centres"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    code = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<CostCentre {self.name}>"
