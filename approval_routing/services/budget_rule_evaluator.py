"""
Budget Rule Evaluator
Evaluates company approval rules and produces additional approvers
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Set, Tuple

from approval_routing.engine.approver_source import Identity, RoleSource, UserSource
from approval_routing.engine.chain import ApproverStub, BaseChain
from approval_routing.exceptions import RuleEvaluationError
from approval_routing.models.approval_rule import ApprovalRule, ApprovalRuleTriggerType
from approval_routing.models.budget import Project, CostCentre
from approval_routing.models.expense_report import ExpenseReport
from approval_routing.services.directory_service import directory_service
from approval_routing.utils.helpers import format_currency, format_percentage, role_title
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


class BudgetRuleEvaluator:
    """Service for budget-threshold approval rules"""

    def __init__(self, directory=None):
        self.directory = directory or directory_service

    def active_rules(self, db: Session, company_id: int) -> List[ApprovalRule]:
        """Active rules of a company in creation order"""
        return db.query(ApprovalRule).filter(
            ApprovalRule.company_id == company_id,
            ApprovalRule.active == True
        ).order_by(ApprovalRule.id).all()

    def evaluate(
        self,
        db: Session,
        report: ExpenseReport,
        base_chain: Optional[BaseChain] = None,
        rules: Optional[List[ApprovalRule]] = None
    ) -> List[ApproverStub]:
        """
        Evaluate rules against a report

        Each triggered rule with a resolvable approver yields one stub at
        level 0; the chain builder numbers them. Stubs whose user (or custom
        role) is already in the base chain, or already added by an earlier
        rule, are discarded.

        Args:
            db: Database session
            report: Report being submitted
            base_chain: Base chain from the approver source resolver
            rules: Rules to evaluate, defaults to the company's active rules

        Returns:
            List of additional approver stubs
        """
        if rules is None:
            rules = self.active_rules(db, report.company_id)

        seen_users, base_roles = self.base_identities(base_chain)
        stubs: List[ApproverStub] = []

        for rule in rules:
            if not rule.active:
                continue

            try:
                reason = self.trigger_reason(db, report, rule)
            except RuleEvaluationError as e:
                logger.warning(f"Skipping rule for report {report.id}: {e.message}")
                continue

            if reason is None:
                continue

            identity = self.resolve_approver(db, rule, report)
            if identity is None:
                logger.warning(
                    f"Rule {rule.id} triggered for report {report.id} but no approver resolved; dropping"
                )
                continue

            if identity.user_id in seen_users or (identity.role_id is not None and identity.role_id in base_roles):
                logger.info(
                    f"Rule {rule.id} approver {identity.user_id} already in chain for report {report.id}; discarding"
                )
                continue

            seen_users.add(identity.user_id)
            stubs.append(
                ApproverStub(
                    user_id=identity.user_id,
                    role=identity.role_label,
                    level=0,
                    role_id=identity.role_id,
                    is_additional_approval=True,
                    approval_rule_id=rule.id,
                    trigger_reason=reason
                )
            )
            logger.info(f"Rule {rule.id} adds approver {identity.user_id} to report {report.id}: {reason}")

        return stubs

    def base_identities(self, base_chain: Optional[BaseChain]) -> Tuple[Set[int], Set[int]]:
        """User ids and custom role ids named by the base chain"""
        users: Set[int] = set()
        roles: Set[int] = set()
        if base_chain is None:
            return users, roles
        for level in base_chain.levels:
            if isinstance(level.source, UserSource):
                users.update(level.source.user_ids)
            elif isinstance(level.source, RoleSource):
                roles.update(level.source.role_ids)
        return users, roles

    def trigger_reason(self, db: Session, report: ExpenseReport, rule: ApprovalRule) -> Optional[str]:
        """
        Evaluate one rule's trigger

        Args:
            db: Database session
            report: Report being submitted
            rule: Rule to evaluate

        Returns:
            Human-readable trigger reason, or None if the rule does not trigger

        Raises:
            RuleEvaluationError: Threshold or budget figures are missing
        """
        currency = report.currency
        total = report.total_amount or 0.0

        if rule.trigger_type == ApprovalRuleTriggerType.REPORT_AMOUNT_EXCEEDS:
            if rule.threshold_value is None:
                raise RuleEvaluationError(rule.id, "no threshold value configured")
            if total >= rule.threshold_value:
                return (
                    f"Report total {format_currency(total, currency)} exceeds approval threshold "
                    f"of {format_currency(rule.threshold_value, currency)}"
                )
            return None

        if rule.trigger_type == ApprovalRuleTriggerType.PROJECT_BUDGET_EXCEEDS:
            if report.project_id is None:
                return None
            holder = db.query(Project).filter(
                Project.id == report.project_id,
                Project.company_id == report.company_id
            ).first()
            return self._budget_reason(rule, holder, "Project", report.project_id, total, currency)

        if rule.trigger_type == ApprovalRuleTriggerType.COST_CENTRE_BUDGET_EXCEEDS:
            if report.cost_centre_id is None:
                return None
            holder = db.query(CostCentre).filter(
                CostCentre.id == report.cost_centre_id,
                CostCentre.company_id == report.company_id
            ).first()
            return self._budget_reason(rule, holder, "Cost centre", report.cost_centre_id, total, currency)

        raise RuleEvaluationError(rule.id, f"unknown trigger type {rule.trigger_type}")

    def _budget_reason(self, rule, holder, kind: str, holder_id: int, total: float, currency: str) -> Optional[str]:
        if holder is None:
            raise RuleEvaluationError(rule.id, f"{kind.lower()} {holder_id} not found")
        if not holder.budget or holder.budget <= 0:
            raise RuleEvaluationError(rule.id, f"{kind.lower()} {holder_id} has no budget")

        percentage = rule.threshold_percentage
        if percentage is None:
            percentage = holder.threshold_percentage or 100.0

        limit = holder.budget * percentage / 100
        projected = holder.projected_spend(total)
        if projected < limit:
            return None

        return (
            f"{kind} {holder.name} spend {format_currency(projected, currency)} including this report "
            f"reaches {format_percentage(percentage)} of budget {format_currency(holder.budget, currency)}"
        )

    def resolve_approver(self, db: Session, rule: ApprovalRule, report: ExpenseReport) -> Optional[Identity]:
        """
        Resolve the approver of a triggered rule

        Priority: specific user, then custom role, then system role. The
        submitting employee is never selected.

        Args:
            db: Database session
            rule: Triggered rule
            report: Report being submitted

        Returns:
            Identity or None
        """
        company_id = report.company_id
        excluded = {report.user_id}

        if rule.approver_user_id is not None and rule.approver_user_id not in excluded:
            user = self.directory.get_active_user(db, rule.approver_user_id, company_id)
            if user:
                return Identity(user.id, user.display_role())
            logger.warning(f"Rule {rule.id} approver user {rule.approver_user_id} is not an active company user")

        if rule.approver_role_id is not None:
            role = self.directory.get_role(db, rule.approver_role_id, company_id)
            holder = self.directory.first_role_holder(db, rule.approver_role_id, company_id, excluded)
            if role and holder:
                return Identity(holder.id, role.name, role.id)

        if rule.approver_role is not None:
            holder = self.directory.first_with_system_role(db, rule.approver_role, company_id, excluded=excluded)
            if holder:
                return Identity(holder.id, role_title(rule.approver_role.value))

        return None


# Create singleton instance
budget_rule_evaluator = BudgetRuleEvaluator()
