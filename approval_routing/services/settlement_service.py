"""
Settlement Service
Hands fully approved reports over to settlement
"""

from datetime import datetime
from sqlalchemy.orm import Session

from approval_routing.exceptions import ResourceNotFoundError, ValidationError
from approval_routing.models.expense_report import ExpenseReport, ExpenseReportStatus
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


class SettlementService:
    """Records settlement requests for approved reports"""

    def handle(self, db: Session, request) -> None:
        """Side effect handler: request settlement of an approved report"""
        self.request_settlement(db, request.report_id)

    def request_settlement(self, db: Session, report_id: int) -> ExpenseReport:
        """
        Mark an approved report as handed over to settlement

        Repeated requests leave the original timestamp untouched.

        Raises:
            ResourceNotFoundError: Report does not exist
            ValidationError: Report is not approved
        """
        report = db.query(ExpenseReport).filter(ExpenseReport.id == report_id).first()
        if not report:
            raise ResourceNotFoundError("ExpenseReport", report_id)

        if report.status != ExpenseReportStatus.APPROVED:
            raise ValidationError(f"Report {report_id} is not approved and cannot be settled")

        if report.settlement_requested_at is None:
            report.settlement_requested_at = datetime.utcnow()
            db.flush()
            logger.info(f"Settlement requested for report {report_id}")

        return report


# Create singleton instance
settlement_service = SettlementService()
