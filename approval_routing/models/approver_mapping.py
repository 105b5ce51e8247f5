"""
Approver Mapping Model
Legacy per-employee approver identities for levels L1-L5
"""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, Boolean
from datetime import datetime
from typing import Dict

from approval_routing.config.database import Base


class ApproverMapping(Base):
    """Approver mapping model"""
    __tablename__ = "approver_mappings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    level1_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    level2_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    level3_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    level4_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    level5_approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_active = Column(Boolean, default=True, index=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ApproverMapping user={self.user_id}>"

    def mapped_levels(self) -> Dict[int, int]:
        """Level number -> mapped approver user id, for levels that are set"""
        levels = {}
        for level_number in range(1, 6):
            approver_id = getattr(self, f"level{level_number}_approver_id")
            if approver_id:
                levels[level_number] = approver_id
        return levels
