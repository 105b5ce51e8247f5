"""
Approval Service
Entry point for building chains, starting approvals and recording decisions
"""

from sqlalchemy.orm import Session
from typing import List, Optional

from approval_routing.engine.chain import ApprovalChain
from approval_routing.engine.state_machine import approval_state_machine
from approval_routing.exceptions import ApprovalRoutingError, ResourceNotFoundError, ValidationError
from approval_routing.models.approval import ApprovalInstance, ApprovalHistory, ChainSource, HistoryStatus
from approval_routing.models.expense_report import ExpenseReport, ExpenseReportStatus, ReportApprover
from approval_routing.services.approval_chain_builder import approval_chain_builder
from approval_routing.services.approver_source_resolver import approver_source_resolver
from approval_routing.services.budget_rule_evaluator import budget_rule_evaluator
from approval_routing.services.decision_processor import (
    DecisionOutcome, decision_processor, live_instance, side_effects_for
)
from approval_routing.services.side_effects import side_effect_dispatcher
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


# Reports in these states may be (re)submitted
SUBMITTABLE_STATUSES = (ExpenseReportStatus.DRAFT, ExpenseReportStatus.CHANGES_REQUESTED)

# Chain sources whose configuration id (matrix or profile) is recorded on the instance
SNAPSHOT_SOURCES = (ChainSource.PROFILE, ChainSource.MATRIX, ChainSource.MAPPING)


def validate_chain(chain: ApprovalChain) -> None:
    """
    Check a pre-built chain before it is placed on a report

    Raises:
        ValidationError: Level numbers not strictly increasing from 1, a level
            without approvers, or an approver numbered for another level
    """
    previous = 0
    for level in chain.levels:
        if level.level_number <= previous:
            raise ValidationError(
                f"Chain level numbers must start at 1 and strictly increase: {chain.level_numbers()}"
            )
        if not level.approvers:
            raise ValidationError(f"Chain level {level.level_number} has no approver")
        misplaced = [stub.user_id for stub in level.approvers if stub.level != level.level_number]
        if misplaced:
            raise ValidationError(f"Approvers {misplaced} are not numbered for level {level.level_number}")
        previous = level.level_number


class ApprovalService:
    """Service for the approval lifecycle of expense reports"""

    def __init__(
        self,
        resolver=None,
        evaluator=None,
        builder=None,
        state_machine=None,
        processor=None,
        dispatcher=None
    ):
        self.resolver = resolver or approver_source_resolver
        self.evaluator = evaluator or budget_rule_evaluator
        self.builder = builder or approval_chain_builder
        self.state_machine = state_machine or approval_state_machine
        self.processor = processor or decision_processor
        self.dispatcher = dispatcher or side_effect_dispatcher

    def build_approval_chain(self, db: Session, report: ExpenseReport) -> ApprovalChain:
        """
        Compute the approval chain of a report without writing anything

        Args:
            db: Database session
            report: Report to route

        Returns:
            ApprovalChain: Base levels followed by budget-triggered levels

        Raises:
            NoApproverResolvedError: No approver can be resolved
        """
        base_chain = self.resolver.resolve(db, report.user_id, report.company_id)
        additional = self.evaluator.evaluate(db, report, base_chain)
        return self.builder.build(db, report, base_chain, additional)

    def initiate_approval(
        self,
        db: Session,
        company_id: int,
        report_id: int,
        request_type: str = "EXPENSE_REPORT",
        chain: Optional[ApprovalChain] = None
    ) -> ApprovalInstance:
        """
        Create the approval instance of a report and place its approvers

        Args:
            db: Database session
            company_id: Company of the report
            report_id: Report to start approval for
            request_type: Type of the request under approval
            chain: Pre-built chain; built from configuration when omitted

        Returns:
            ApprovalInstance: PENDING at the first level, or APPROVED for an empty chain

        Raises:
            ResourceNotFoundError: Report does not exist in the company
            ValidationError: Report already has an approval in progress, is not in a
                submittable state, or the given chain is malformed
        """
        report = db.query(ExpenseReport).filter(
            ExpenseReport.id == report_id,
            ExpenseReport.company_id == company_id
        ).first()
        if not report:
            raise ResourceNotFoundError("ExpenseReport", report_id)

        if live_instance(db, report_id):
            raise ValidationError(f"Report {report_id} already has an approval in progress")

        if report.status not in SUBMITTABLE_STATUSES:
            raise ValidationError(
                f"Approval cannot be started for report {report_id} in status {report.status.value}"
            )

        if chain is None:
            chain = self.build_approval_chain(db, report)
        else:
            validate_chain(chain)

        try:
            instance = ApprovalInstance(
                company_id=company_id,
                request_id=report.id,
                request_type=request_type,
                chain_source=chain.source,
                matrix_id=chain.source_id if chain.source in SNAPSHOT_SOURCES else None
            )
            db.add(instance)
            transition = self.state_machine.initialize(instance, report, chain)
            db.flush()
            db.commit()
        except ApprovalRoutingError:
            db.rollback()
            raise

        db.refresh(instance)
        logger.info(
            f"Approval initiated for report {report.id}: {len(chain.levels)} level(s), "
            f"status {instance.status.value}"
        )

        self.dispatcher.dispatch(db, side_effects_for(transition, instance, report))
        return instance

    def submit_report(self, db: Session, report_id: int) -> ApprovalInstance:
        """
        Submit a draft report, or resubmit one after changes were requested

        Budget rules are evaluated afresh on every submission.

        Args:
            db: Database session
            report_id: Report to submit

        Returns:
            ApprovalInstance: The new instance
        """
        report = db.query(ExpenseReport).filter(ExpenseReport.id == report_id).first()
        if not report:
            raise ResourceNotFoundError("ExpenseReport", report_id)

        if report.status not in SUBMITTABLE_STATUSES:
            raise ValidationError(
                f"Report {report_id} cannot be submitted from status {report.status.value}"
            )

        logger.info(f"Submitting report {report_id} ({report.status.value})")
        return self.initiate_approval(db, report.company_id, report.id)

    def decide(
        self,
        db: Session,
        report_id: int,
        actor_id: int,
        action,
        comment: Optional[str] = None
    ) -> DecisionOutcome:
        """Record an approver decision, see DecisionProcessor.decide"""
        return self.processor.decide(db, report_id, actor_id, action, comment)

    def get_active_instance(self, db: Session, report_id: int) -> Optional[ApprovalInstance]:
        """Live instance of a report, if any"""
        return live_instance(db, report_id)

    def latest_instance(self, db: Session, report_id: int) -> Optional[ApprovalInstance]:
        """Most recent instance of a report regardless of state"""
        return db.query(ApprovalInstance).filter(
            ApprovalInstance.request_id == report_id
        ).order_by(ApprovalInstance.id.desc()).first()

    def pending_for_approver(self, db: Session, user_id: int) -> List[ExpenseReport]:
        """
        Reports waiting for a user's decision at their current level

        Args:
            db: Database session
            user_id: Approver

        Returns:
            List of reports, oldest submission first
        """
        return db.query(ExpenseReport).join(
            ReportApprover, ReportApprover.report_id == ExpenseReport.id
        ).filter(
            ExpenseReport.status == ExpenseReportStatus.PENDING_APPROVAL,
            ReportApprover.user_id == user_id,
            ReportApprover.level == ExpenseReport.current_approval_level,
            ReportApprover.decided_at == None,
            ReportApprover.skipped_at == None
        ).order_by(ExpenseReport.submitted_at, ExpenseReport.id).all()

    def approval_history_for_actor(self, db: Session, user_id: int) -> List[ApprovalHistory]:
        """Decisions recorded by a user, newest first"""
        return db.query(ApprovalHistory).filter(
            ApprovalHistory.approver_id == user_id,
            ApprovalHistory.status != HistoryStatus.SKIPPED
        ).order_by(ApprovalHistory.timestamp.desc(), ApprovalHistory.id.desc()).all()


# Create singleton instance
approval_service = ApprovalService()
