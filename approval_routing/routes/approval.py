"""
Approval Routes
Chain preview, submission, decisions and approver worklists
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from approval_routing.config.database import get_db
from approval_routing.engine.chain import ApprovalChain
from approval_routing.exceptions import ResourceNotFoundError
from approval_routing.models.expense_report import ExpenseReport
from approval_routing.models.user import User
from approval_routing.schemas.approval import (
    ApproverResponse, ChainLevelResponse, ChainResponse, DecisionRequest,
    HistoryResponse, InstanceResponse, PendingReportResponse
)
from approval_routing.services.approval_service import approval_service
from approval_routing.services.auth_service import auth_service, CONFIG_ADMIN_ROLES
from approval_routing.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


def get_visible_report(db: Session, report_id: int, current_user: User) -> ExpenseReport:
    """Report of the current user's company (any company for super admins)"""
    report = db.query(ExpenseReport).filter(ExpenseReport.id == report_id).first()
    if not report or (report.company_id != current_user.company_id and not current_user.is_super_admin()):
        raise ResourceNotFoundError("ExpenseReport", report_id)
    return report


def chain_response(report: ExpenseReport, chain: ApprovalChain) -> ChainResponse:
    return ChainResponse(
        report_id=report.id,
        source=chain.source.value,
        levels=[
            ChainLevelResponse(
                level_number=level.level_number,
                mode=level.mode.value,
                parallel_rule=level.parallel_rule.value if level.parallel_rule else None,
                is_additional=level.is_additional,
                approvers=[
                    ApproverResponse(
                        level=stub.level,
                        user_id=stub.user_id,
                        role=stub.role,
                        is_additional_approval=stub.is_additional_approval,
                        approval_rule_id=stub.approval_rule_id,
                        trigger_reason=stub.trigger_reason
                    )
                    for stub in level.approvers
                ]
            )
            for level in chain.levels
        ]
    )


@router.get("/reports/{report_id}/chain", response_model=ChainResponse)
async def preview_chain(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """
    Compute the approval chain a report would get if submitted now

    Nothing is written.
    """
    report = get_visible_report(db, report_id, current_user)
    chain = approval_service.build_approval_chain(db, report)

    logger.info(f"{current_user.username} previewed chain of report {report_id}: levels {chain.level_numbers()}")
    return chain_response(report, chain)


@router.post("/reports/{report_id}/submit")
async def submit_report(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Submit (or resubmit) a report for approval"""
    report = get_visible_report(db, report_id, current_user)

    if report.user_id != current_user.id and current_user.role.value not in CONFIG_ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the report owner can submit this report"
        )

    instance = approval_service.submit_report(db, report.id)
    db.refresh(report)

    return {
        "success": True,
        "message": f"Report submitted, status {report.status.value}",
        "report_id": report.id,
        "report_status": report.status.value,
        "current_level": report.current_approval_level,
        "approvers": [ApproverResponse.model_validate(approver) for approver in report.approvers],
        "instance": InstanceResponse.model_validate(instance)
    }


@router.post("/reports/{report_id}/decision")
async def decide(
    report_id: int,
    decision: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Approve, reject or request changes on a report at the current level"""
    logger.info(f"User {current_user.username} deciding {decision.action.value} on report {report_id}")

    outcome = approval_service.decide(db, report_id, current_user.id, decision.action, decision.comment)
    db.refresh(outcome.report)
    db.refresh(outcome.instance)

    return {
        "success": True,
        "message": f"Decision recorded: {outcome.transition.kind.value}",
        "report_id": report_id,
        "transition": outcome.transition.kind.value,
        "report_status": outcome.report.status.value,
        "current_level": outcome.report.current_approval_level,
        "instance": InstanceResponse.model_validate(outcome.instance)
    }


@router.get("/reports/{report_id}/instance")
async def get_instance(
    report_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Latest approval instance of a report with its approvers and history"""
    report = get_visible_report(db, report_id, current_user)
    instance = approval_service.latest_instance(db, report.id)
    if not instance:
        raise ResourceNotFoundError("ApprovalInstance", report_id)

    return {
        "report_id": report.id,
        "report_status": report.status.value,
        "approvers": [ApproverResponse.model_validate(approver) for approver in report.approvers],
        "instance": InstanceResponse.model_validate(instance)
    }


@router.get("/pending")
async def get_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Reports waiting for the current user's decision"""
    reports = approval_service.pending_for_approver(db, current_user.id)

    logger.info(f"{current_user.username} viewing {len(reports)} pending approvals")
    return {
        "reports": [PendingReportResponse.model_validate(report) for report in reports],
        "count": len(reports)
    }


@router.get("/history")
async def get_approval_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Decisions taken by the current user, newest first"""
    entries = approval_service.approval_history_for_actor(db, current_user.id)
    return {
        "history": [HistoryResponse.model_validate(entry) for entry in entries],
        "count": len(entries)
    }
