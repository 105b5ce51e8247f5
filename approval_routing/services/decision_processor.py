"""
Decision Processor
Applies approver decisions to live approval instances
"""

from dataclasses import dataclass, field
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from typing import List, Optional, Union

from approval_routing.config.settings import settings
from approval_routing.engine.state_machine import Transition, TransitionKind, approval_state_machine
from approval_routing.exceptions import (
    ApprovalRoutingError, ConcurrentModificationError, ResourceNotFoundError,
    SideEffectDispatchError, UnauthorizedDecisionError, ValidationError
)
from approval_routing.models.approval import ApprovalInstance, ApprovalStatus
from approval_routing.models.expense_report import ExpenseReport, ApproverAction
from approval_routing.services.directory_service import directory_service
from approval_routing.services.side_effects import SideEffectKind, SideEffectRequest, side_effect_dispatcher
from approval_routing.utils.helpers import clean_comment
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


@dataclass
class DecisionOutcome:
    """Committed result of a decision, plus any side effects that failed afterwards"""
    instance: ApprovalInstance
    report: ExpenseReport
    transition: Transition
    dispatch_failures: List[SideEffectDispatchError] = field(default_factory=list)


def live_instance(db: Session, report_id: int) -> Optional[ApprovalInstance]:
    """Latest approval instance of a report that still accepts decisions"""
    return db.query(ApprovalInstance).filter(
        ApprovalInstance.request_id == report_id,
        ApprovalInstance.status == ApprovalStatus.PENDING,
        ApprovalInstance.superseded == False
    ).order_by(ApprovalInstance.id.desc()).first()


def side_effects_for(
    transition: Transition,
    instance: ApprovalInstance,
    report: ExpenseReport
) -> List[SideEffectRequest]:
    """
    Side effect requests implied by a transition

    Args:
        transition: Transition produced by the state machine
        instance: Approval instance after the transition
        report: Report after the transition

    Returns:
        Requests to dispatch once the transition is committed
    """
    kind = transition.kind
    comment = transition.comment
    requests: List[SideEffectRequest] = []

    audit_descriptions = {
        TransitionKind.STARTED: f"Approval started at L{transition.to_level}",
        TransitionKind.RECORDED: f"Approval recorded at L{transition.from_level}, level still open",
        TransitionKind.ADVANCED: f"L{transition.from_level} approved, advanced to L{transition.to_level}",
        TransitionKind.APPROVED: "Approval completed",
        TransitionKind.REJECTED: f"Rejected at L{transition.from_level}",
        TransitionKind.CHANGES_REQUESTED: f"Changes requested at L{transition.from_level}",
    }
    requests.append(
        SideEffectRequest(
            kind=SideEffectKind.AUDIT,
            event=f"approval_{kind.value}",
            report_id=report.id,
            actor_id=transition.actor_id,
            payload={
                "description": audit_descriptions[kind],
                "entity_type": "approval_instance",
                "entity_id": instance.id,
                "changes": {
                    "from_level": transition.from_level,
                    "to_level": transition.to_level,
                    "action": transition.action.value if transition.action else None,
                    "comment": comment,
                    "status": report.status.value,
                },
            }
        )
    )

    if kind in (TransitionKind.STARTED, TransitionKind.ADVANCED):
        requests.append(
            SideEffectRequest(
                kind=SideEffectKind.NOTIFICATION,
                event="approval_required",
                report_id=report.id,
                user_ids=[slot.user_id for slot in report.approvers_at(transition.to_level)]
            )
        )
    elif kind == TransitionKind.APPROVED:
        requests.append(
            SideEffectRequest(kind=SideEffectKind.NOTIFICATION, event="report_approved", report_id=report.id)
        )
        requests.append(
            SideEffectRequest(kind=SideEffectKind.SETTLEMENT, event="settlement_requested", report_id=report.id)
        )
    elif kind == TransitionKind.REJECTED:
        requests.append(
            SideEffectRequest(
                kind=SideEffectKind.NOTIFICATION, event="report_rejected",
                report_id=report.id, payload={"comment": comment}
            )
        )
    elif kind == TransitionKind.CHANGES_REQUESTED:
        requests.append(
            SideEffectRequest(
                kind=SideEffectKind.NOTIFICATION, event="changes_requested",
                report_id=report.id, payload={"comment": comment}
            )
        )

    return requests


class DecisionProcessor:
    """Service that validates and applies approver decisions"""

    def __init__(self, state_machine=None, dispatcher=None, directory=None):
        self.state_machine = state_machine or approval_state_machine
        self.dispatcher = dispatcher or side_effect_dispatcher
        self.directory = directory or directory_service

    def decide(
        self,
        db: Session,
        report_id: int,
        actor_id: int,
        action: Union[ApproverAction, str],
        comment: Optional[str] = None
    ) -> DecisionOutcome:
        """
        Record a decision and advance the approval instance

        The decision and the resulting transition are committed together.
        When another transaction changed the instance or report first, the
        decision is re-read and retried; side effects are dispatched only
        after the commit succeeded.

        Args:
            db: Database session
            report_id: Report under approval
            actor_id: Deciding user
            action: approve, reject or request_changes
            comment: Decision comment, required for request_changes

        Returns:
            DecisionOutcome

        Raises:
            ValidationError: Unknown action or request_changes without a comment
            ResourceNotFoundError: Report or actor does not exist
            UnauthorizedDecisionError: Actor may not decide at the current level
            ConcurrentModificationError: Retries exhausted on version conflicts
        """
        try:
            action = ApproverAction(action)
        except ValueError:
            raise ValidationError(f"Unknown approver action: {action}")

        comment = clean_comment(comment)
        if action == ApproverAction.REQUEST_CHANGES and not comment:
            raise ValidationError("A comment is required when requesting changes")

        attempts = settings.DECISION_RETRY_ATTEMPTS + 1
        outcome = None

        for attempt in range(1, attempts + 1):
            try:
                outcome = self._apply(db, report_id, actor_id, action, comment)
                db.commit()
                break
            except StaleDataError:
                db.rollback()
                logger.warning(
                    f"Version conflict deciding report {report_id} (attempt {attempt}/{attempts})"
                )
                if attempt == attempts:
                    raise ConcurrentModificationError(report_id, attempts)
            except ApprovalRoutingError:
                db.rollback()
                raise

        logger.info(
            f"User {actor_id} {action.value} on report {report_id}: "
            f"{outcome.transition.kind.value} (L{outcome.transition.from_level} -> L{outcome.transition.to_level})"
        )

        requests = side_effects_for(outcome.transition, outcome.instance, outcome.report)
        outcome.dispatch_failures = self.dispatcher.dispatch(db, requests)
        return outcome

    def _apply(
        self,
        db: Session,
        report_id: int,
        actor_id: int,
        action: ApproverAction,
        comment: Optional[str]
    ) -> DecisionOutcome:
        report = db.query(ExpenseReport).filter(ExpenseReport.id == report_id).first()
        if not report:
            raise ResourceNotFoundError("ExpenseReport", report_id)

        actor = self.directory.get_user(db, actor_id)
        if not actor:
            raise ResourceNotFoundError("User", actor_id)

        if not actor.is_active:
            raise UnauthorizedDecisionError(actor_id, report_id, "actor is inactive")

        if actor.company_id != report.company_id and not actor.is_super_admin():
            raise UnauthorizedDecisionError(actor_id, report_id, "actor belongs to another company")

        instance = live_instance(db, report_id)
        if not instance:
            raise UnauthorizedDecisionError(actor_id, report_id, "report has no approval in progress")

        slot = self.state_machine.open_slot(instance, report, actor_id)
        if slot is None:
            raise UnauthorizedDecisionError(
                actor_id, report_id, f"not an open approver at level {instance.current_level}"
            )

        transition = self.state_machine.apply(instance, report, slot, action, comment, datetime.utcnow())
        db.flush()
        return DecisionOutcome(instance=instance, report=report, transition=transition)


# Create singleton instance
decision_processor = DecisionProcessor()
