"""
Approval Instance State Machine

States: PENDING (with a current level), APPROVED and REJECTED (terminal).

    SEQUENTIAL     one approve completes the level
    PARALLEL/ANY   first approve completes the level, remaining slots are skipped
    PARALLEL/ALL   every slot must approve; one reject rejects the instance
    any reject     instance REJECTED, no further level is evaluated

request_changes has no state of its own: the instance is superseded, the
report's approver list is emptied and the report must be resubmitted, which
creates a new instance. The machine only mutates the in-memory instance and
report; persistence belongs to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from approval_routing.engine.chain import ApprovalChain
from approval_routing.models.approval import ApprovalInstance, ApprovalHistory, ApprovalStatus, HistoryStatus
from approval_routing.models.approval_matrix import ApprovalType, ParallelRule
from approval_routing.models.expense_report import (
    ExpenseReport, ExpenseReportStatus, ReportApprover, ApproverAction
)


class TransitionKind(str, Enum):
    """Outcome of applying one decision"""
    STARTED = "started"
    RECORDED = "recorded"
    ADVANCED = "advanced"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    from_level: Optional[int]
    to_level: Optional[int]
    actor_id: Optional[int] = None
    action: Optional[ApproverAction] = None
    comment: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (TransitionKind.APPROVED, TransitionKind.REJECTED)


class ApprovalStateMachine:
    """Pure transition rules over an approval instance and its report"""

    def initialize(
        self,
        instance: ApprovalInstance,
        report: ExpenseReport,
        chain: ApprovalChain,
        now: Optional[datetime] = None
    ) -> Transition:
        """
        Place the resolved chain on the report and set the initial state

        An empty chain is approved immediately.
        """
        now = now or datetime.utcnow()

        report.approvers = [
            ReportApprover(
                level=stub.level,
                user_id=stub.user_id,
                role=stub.role,
                is_additional_approval=stub.is_additional_approval,
                approval_rule_id=stub.approval_rule_id,
                trigger_reason=stub.trigger_reason
            )
            for stub in chain.approvers()
        ]
        instance.chain_snapshot = [level.snapshot() for level in chain.levels]
        report.submitted_at = now
        report.updated_at = now

        if chain.is_empty:
            instance.current_level = None
            self._complete(instance, report, now)
            return Transition(TransitionKind.APPROVED, None, None)

        instance.current_level = chain.first_level()
        instance.status = ApprovalStatus.PENDING
        report.status = ExpenseReportStatus.PENDING_APPROVAL
        report.current_approval_level = instance.current_level
        return Transition(TransitionKind.STARTED, None, instance.current_level)

    def open_slot(
        self,
        instance: ApprovalInstance,
        report: ExpenseReport,
        actor_id: int
    ) -> Optional[ReportApprover]:
        """The actor's undecided slot at the current level, if any"""
        if not instance.is_live or instance.current_level is None:
            return None
        for slot in report.approvers_at(instance.current_level):
            if slot.user_id == actor_id and slot.is_open:
                return slot
        return None

    def next_level(self, instance: ApprovalInstance, after: int) -> Optional[int]:
        """Next level number of the chain, or None when ``after`` is the last"""
        for level_number in instance.level_numbers():
            if level_number > after:
                return level_number
        return None

    def apply(
        self,
        instance: ApprovalInstance,
        report: ExpenseReport,
        slot: ReportApprover,
        action: ApproverAction,
        comment: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Transition:
        """
        Record a decision on an open slot of the current level and transition

        Args:
            instance: Live approval instance
            report: Report owning the approver slots
            slot: Open slot of the acting approver at the current level
            action: Decision taken
            comment: Optional decision comment
            now: Decision timestamp

        Returns:
            Transition describing what changed
        """
        now = now or datetime.utcnow()
        level = instance.current_level
        actor_id = slot.user_id

        instance.updated_at = now
        report.updated_at = now

        if action == ApproverAction.REQUEST_CHANGES:
            self._record(instance, level, actor_id, HistoryStatus.CHANGES_REQUESTED, comment, now)
            instance.superseded = True
            report.approvers.clear()
            report.status = ExpenseReportStatus.CHANGES_REQUESTED
            report.current_approval_level = None
            return Transition(TransitionKind.CHANGES_REQUESTED, level, None, actor_id, action, comment)

        slot.decided_at = now
        slot.action = action
        slot.comment = comment

        if action == ApproverAction.REJECT:
            self._record(instance, level, actor_id, HistoryStatus.REJECTED, comment, now)
            instance.status = ApprovalStatus.REJECTED
            instance.completed_at = now
            report.status = ExpenseReportStatus.REJECTED
            report.rejected_at = now
            report.current_approval_level = None
            return Transition(TransitionKind.REJECTED, level, None, actor_id, action, comment)

        self._record(instance, level, actor_id, HistoryStatus.APPROVED, comment, now)

        if not self._level_complete(instance, report, level, actor_id, now):
            return Transition(TransitionKind.RECORDED, level, level, actor_id, action, comment)

        next_level = self.next_level(instance, level)
        if next_level is None:
            self._complete(instance, report, now)
            return Transition(TransitionKind.APPROVED, level, None, actor_id, action, comment)

        instance.current_level = next_level
        report.current_approval_level = next_level
        return Transition(TransitionKind.ADVANCED, level, next_level, actor_id, action, comment)

    def _level_complete(
        self,
        instance: ApprovalInstance,
        report: ExpenseReport,
        level: int,
        actor_id: int,
        now: datetime
    ) -> bool:
        config = instance.level_config(level)
        slots = report.approvers_at(level)

        if (
            config.get("mode") == ApprovalType.PARALLEL.value
            and config.get("parallel_rule") == ParallelRule.ALL.value
        ):
            return all(slot.action == ApproverAction.APPROVE for slot in slots)

        # SEQUENTIAL and PARALLEL/ANY: remaining slots become moot
        for slot in slots:
            if slot.is_open:
                slot.skipped_at = now
                self._record(
                    instance, level, slot.user_id, HistoryStatus.SKIPPED,
                    f"Not required: level {level} approved by user {actor_id}", now
                )
        return True

    def _complete(self, instance: ApprovalInstance, report: ExpenseReport, now: datetime) -> None:
        instance.status = ApprovalStatus.APPROVED
        instance.completed_at = now
        report.status = ExpenseReportStatus.APPROVED
        report.approved_at = now
        report.current_approval_level = None

    def _record(self, instance, level, approver_id, status, comments, now) -> None:
        instance.history.append(
            ApprovalHistory(
                level_number=level,
                approver_id=approver_id,
                status=status,
                comments=comments,
                timestamp=now
            )
        )


# Create singleton instance
approval_state_machine = ApprovalStateMachine()
