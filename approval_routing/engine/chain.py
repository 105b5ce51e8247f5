"""
Approval Chain Types
Value objects passed between the resolver, the budget evaluator and the builder
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from approval_routing.engine.approver_source import ApproverSource
from approval_routing.models.approval import ChainSource
from approval_routing.models.approval_matrix import ApprovalType, ParallelRule


@dataclass
class ChainLevel:
    """A level of the base chain before identities are resolved"""
    level_number: int
    mode: ApprovalType
    source: ApproverSource
    parallel_rule: Optional[ParallelRule] = None
    skip_allowed: bool = False
    role_label: Optional[str] = None
    conditions: List[Any] = field(default_factory=list)

    def __post_init__(self):
        if self.mode == ApprovalType.PARALLEL and self.parallel_rule is None:
            self.parallel_rule = ParallelRule.ALL
        if self.mode == ApprovalType.SEQUENTIAL:
            self.parallel_rule = None


@dataclass
class BaseChain:
    """Output of the approver source resolver: exactly one source supplies it"""
    source: ChainSource
    levels: List[ChainLevel]
    source_id: Optional[int] = None

    def max_level(self) -> int:
        return max((level.level_number for level in self.levels), default=0)


@dataclass
class ApproverStub:
    """An approver placed in a chain, with display data fixed at build time"""
    user_id: int
    role: str
    level: int = 0
    role_id: Optional[int] = None
    is_additional_approval: bool = False
    approval_rule_id: Optional[int] = None
    trigger_reason: Optional[str] = None


@dataclass
class ResolvedLevel:
    """A level with concrete approvers"""
    level_number: int
    mode: ApprovalType
    approvers: List[ApproverStub]
    parallel_rule: Optional[ParallelRule] = None
    is_additional: bool = False
    conditions: List[Any] = field(default_factory=list)

    def snapshot(self) -> Dict[str, Any]:
        """Mode data persisted on the approval instance"""
        return {
            "level_number": self.level_number,
            "mode": self.mode.value,
            "parallel_rule": self.parallel_rule.value if self.parallel_rule else None,
            "is_additional": self.is_additional,
        }


@dataclass
class ApprovalChain:
    """Ordered, de-duplicated chain ready to be persisted"""
    source: ChainSource
    levels: List[ResolvedLevel]
    source_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.levels

    def level_numbers(self) -> List[int]:
        return [level.level_number for level in self.levels]

    def approvers(self) -> List[ApproverStub]:
        return [approver for level in self.levels for approver in level.approvers]

    def first_level(self) -> Optional[int]:
        return self.levels[0].level_number if self.levels else None
