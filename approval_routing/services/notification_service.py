"""
Notification Service
Handles creation and management of user notifications
"""

from sqlalchemy.orm import Session
from typing import List, Optional

from approval_routing.exceptions import ResourceNotFoundError
from approval_routing.models.expense_report import ExpenseReport
from approval_routing.models.notification import Notification, NotificationType
from approval_routing.utils.helpers import format_currency
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


class NotificationService:
    """Service for managing notifications"""

    def handle(self, db: Session, request) -> None:
        """
        Side effect handler: create notifications for an approval event

        Args:
            db: Database session
            request: SideEffectRequest of kind NOTIFICATION
        """
        report = db.query(ExpenseReport).filter(ExpenseReport.id == request.report_id).first()
        if not report:
            raise ResourceNotFoundError("ExpenseReport", request.report_id)

        comment = request.payload.get("comment")

        if request.event == "approval_required":
            self.notify_approval_required(db, report, request.user_ids)
        elif request.event == "report_approved":
            self.notify_report_approved(db, report)
        elif request.event == "report_rejected":
            self.notify_report_rejected(db, report, comment)
        elif request.event == "changes_requested":
            self.notify_changes_requested(db, report, comment)
        else:
            logger.warning(f"Unknown notification event: {request.event}")

    def notify_approval_required(self, db: Session, report: ExpenseReport, approver_ids: List[int]):
        """
        Notify approvers of the current level that a report needs approval

        Args:
            db: Database session
            report: Report awaiting approval
            approver_ids: Approvers of the current level
        """
        if not approver_ids:
            logger.warning(f"No approvers to notify for report {report.id}")
            return

        employee_name = report.employee.full_name if report.employee else f"user {report.user_id}"
        for approver_id in approver_ids:
            notification = Notification(
                user_id=approver_id,
                type=NotificationType.APPROVAL_REQUIRED,
                title="Expense Report Requires Approval",
                message=f"Expense report '{report.name}' from {employee_name} requires your approval. "
                        f"Amount: {format_currency(report.total_amount or 0.0, report.currency)}. "
                        f"Level: {report.current_approval_level}",
                report_id=report.id
            )
            db.add(notification)

        db.flush()
        logger.info(f"Notified {len(approver_ids)} approver(s) for report {report.id}")

    def notify_report_approved(self, db: Session, report: ExpenseReport):
        """Notify the employee that their report was fully approved"""
        notification = Notification(
            user_id=report.user_id,
            type=NotificationType.REPORT_APPROVED,
            title="Expense Report Approved",
            message=f"Your expense report '{report.name}' has been approved.",
            report_id=report.id
        )
        db.add(notification)
        db.flush()

        logger.info(f"Notified user {report.user_id} about report {report.id} approval")

    def notify_report_rejected(self, db: Session, report: ExpenseReport, comment: Optional[str] = None):
        """Notify the employee that their report was rejected"""
        message = f"Your expense report '{report.name}' has been rejected."
        if comment:
            message += f" Comments: {comment}"

        notification = Notification(
            user_id=report.user_id,
            type=NotificationType.REPORT_REJECTED,
            title="Expense Report Rejected",
            message=message,
            report_id=report.id
        )
        db.add(notification)
        db.flush()

        logger.info(f"Notified user {report.user_id} about report {report.id} rejection")

    def notify_changes_requested(self, db: Session, report: ExpenseReport, comment: Optional[str] = None):
        """Notify the employee that changes were requested before approval can continue"""
        notification = Notification(
            user_id=report.user_id,
            type=NotificationType.CHANGES_REQUESTED,
            title="Changes Requested",
            message=f"Changes were requested on expense report '{report.name}': {comment}",
            report_id=report.id
        )
        db.add(notification)
        db.flush()

        logger.info(f"Notified user {report.user_id} about changes requested on report {report.id}")


# Create singleton instance
notification_service = NotificationService()
