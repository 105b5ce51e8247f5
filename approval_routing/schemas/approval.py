"""
Approval Schemas
Pydantic models for the approval workflow
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from approval_routing.models.approval import ApprovalStatus, ChainSource, HistoryStatus
from approval_routing.models.expense_report import ApproverAction, ExpenseReportStatus


class DecisionRequest(BaseModel):
    """Schema for an approver decision"""
    action: ApproverAction
    comment: Optional[str] = Field(None, max_length=2000)


class ApproverResponse(BaseModel):
    """One approver slot of a report"""
    id: Optional[int] = None
    level: int
    user_id: int
    role: str
    decided_at: Optional[datetime] = None
    action: Optional[ApproverAction] = None
    comment: Optional[str] = None
    skipped_at: Optional[datetime] = None
    is_additional_approval: bool = False
    approval_rule_id: Optional[int] = None
    trigger_reason: Optional[str] = None

    class Config:
        from_attributes = True


class ChainLevelResponse(BaseModel):
    """One level of a computed chain"""
    level_number: int
    mode: str
    parallel_rule: Optional[str] = None
    is_additional: bool = False
    approvers: List[ApproverResponse]


class ChainResponse(BaseModel):
    """Computed chain of a report"""
    report_id: int
    source: str
    levels: List[ChainLevelResponse]


class HistoryResponse(BaseModel):
    """Approval history entry"""
    id: int
    instance_id: int
    level_number: int
    approver_id: Optional[int] = None
    status: HistoryStatus
    comments: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class InstanceResponse(BaseModel):
    """Approval instance with its history"""
    id: int
    request_id: int
    request_type: str
    chain_source: ChainSource
    current_level: Optional[int] = None
    status: ApprovalStatus
    superseded: bool
    created_at: datetime
    completed_at: Optional[datetime] = None
    history: List[HistoryResponse] = []

    class Config:
        from_attributes = True


class PendingReportResponse(BaseModel):
    """Report waiting for the current user's decision"""
    id: int
    name: str
    user_id: int
    total_amount: float
    currency: str
    status: ExpenseReportStatus
    current_approval_level: Optional[int] = None
    submitted_at: Optional[datetime] = None

    class Config:
        from_attributes = True
