"""
Approval Configuration Schemas
Pydantic models for profile, mapping, rule, matrix and role administration
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from approval_routing.models.approval_matrix import ApprovalType, ParallelRule
from approval_routing.models.approval_rule import ApprovalRuleTriggerType
from approval_routing.models.user import UserRole


class ProfileLevel(BaseModel):
    """One level of a personalized chain"""
    level: int = Field(..., ge=1)
    mode: ApprovalType = ApprovalType.SEQUENTIAL
    approvalType: Optional[ParallelRule] = None
    roles: List[int] = []
    approverUserIds: List[int] = []


class ProfileRequest(BaseModel):
    """Schema for setting an employee's approval profile"""
    approver_chain: List[ProfileLevel] = Field(..., min_length=1)
    reasoning_summary: Optional[str] = None


class ProfileResponse(BaseModel):
    id: int
    user_id: int
    company_id: int
    approver_chain: list
    source: str
    reasoning_summary: Optional[str] = None
    active: bool
    version: int
    created_at: datetime

    class Config:
        from_attributes = True


class MappingRequest(BaseModel):
    """Schema for the legacy L1-L5 approver mapping"""
    level1_approver_id: Optional[int] = None
    level2_approver_id: Optional[int] = None
    level3_approver_id: Optional[int] = None
    level4_approver_id: Optional[int] = None
    level5_approver_id: Optional[int] = None

    def levels(self) -> dict:
        return {level: getattr(self, f"level{level}_approver_id") for level in range(1, 6)}


class MappingResponse(MappingRequest):
    id: int
    user_id: int
    company_id: int
    is_active: bool

    class Config:
        from_attributes = True


class RuleCreate(BaseModel):
    """Schema for creating a budget rule"""
    trigger_type: ApprovalRuleTriggerType
    threshold_value: Optional[float] = Field(None, gt=0)
    threshold_percentage: Optional[float] = Field(None, gt=0)
    approver_user_id: Optional[int] = None
    approver_role_id: Optional[int] = None
    approver_role: Optional[UserRole] = None
    description: Optional[str] = None


class RuleUpdate(BaseModel):
    """Schema for updating a budget rule; only set fields change"""
    trigger_type: Optional[ApprovalRuleTriggerType] = None
    threshold_value: Optional[float] = Field(None, gt=0)
    threshold_percentage: Optional[float] = Field(None, gt=0)
    approver_user_id: Optional[int] = None
    approver_role_id: Optional[int] = None
    approver_role: Optional[UserRole] = None
    active: Optional[bool] = None
    description: Optional[str] = None


class RuleResponse(BaseModel):
    id: int
    company_id: int
    trigger_type: ApprovalRuleTriggerType
    threshold_value: Optional[float] = None
    threshold_percentage: Optional[float] = None
    approver_user_id: Optional[int] = None
    approver_role_id: Optional[int] = None
    approver_role: Optional[UserRole] = None
    active: bool
    description: Optional[str] = None

    class Config:
        from_attributes = True


class MatrixLevelRequest(BaseModel):
    """One level of an approval matrix"""
    level_number: int = Field(..., ge=1)
    approval_type: ApprovalType = ApprovalType.SEQUENTIAL
    parallel_rule: Optional[ParallelRule] = None
    approver_user_ids: List[int] = []
    approver_role_ids: List[int] = []
    enabled: bool = True
    skip_allowed: bool = False
    conditions: list = []


class MatrixCreate(BaseModel):
    """Schema for creating an approval matrix"""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    levels: List[MatrixLevelRequest] = Field(..., min_length=1)
    activate: bool = True


class MatrixLevelResponse(BaseModel):
    level_number: int
    approval_type: ApprovalType
    parallel_rule: Optional[ParallelRule] = None
    approver_user_ids: List[int] = []
    approver_role_ids: List[int] = []
    enabled: bool
    skip_allowed: bool
    conditions: list = []

    class Config:
        from_attributes = True


class MatrixResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    levels: List[MatrixLevelResponse]
    created_at: datetime

    class Config:
        from_attributes = True


class RoleCreate(BaseModel):
    """Schema for creating a custom role"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class RoleResponse(BaseModel):
    id: int
    company_id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True
