"""
Budget Rule Evaluator Tests
Report amount, project budget and cost centre budget triggers
"""

import pytest

from approval_routing.exceptions import RuleEvaluationError
from approval_routing.models.approval_rule import ApprovalRuleTriggerType
from approval_routing.models.user import UserRole
from approval_routing.services.approval_service import ApprovalService
from approval_routing.services.approver_source_resolver import ApproverSourceResolver
from approval_routing.services.budget_rule_evaluator import BudgetRuleEvaluator

PROJECT = ApprovalRuleTriggerType.PROJECT_BUDGET_EXCEEDS
COST_CENTRE = ApprovalRuleTriggerType.COST_CENTRE_BUDGET_EXCEEDS


@pytest.fixture
def evaluator():
    return BudgetRuleEvaluator()


@pytest.fixture
def base_chain(db, org):
    """Hierarchy chain of the seeded employee: manager, sales business head"""
    return ApproverSourceResolver().resolve(db, org.employee.id, org.company.id)


class TestReportAmountRule:
    """REPORT_AMOUNT_EXCEEDS"""

    def test_amount_above_threshold_adds_approver_at_level_three(self, db, factory, org):
        """6,000 against a 5,000 threshold: CFO appended after the two base levels"""
        rule = factory.rule(org.company, threshold_value=5000, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=6000)

        chain = ApprovalService().build_approval_chain(db, report)

        assert chain.level_numbers() == [1, 2, 3]
        additional = chain.levels[2]
        assert additional.is_additional
        assert len(additional.approvers) == 1
        stub = additional.approvers[0]
        assert stub.user_id == org.cfo.id
        assert stub.is_additional_approval
        assert stub.approval_rule_id == rule.id
        assert "6,000" in stub.trigger_reason
        assert "5,000" in stub.trigger_reason

    def test_amount_below_threshold_leaves_chain_unchanged(self, db, factory, org):
        factory.rule(org.company, threshold_value=5000, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=3000)

        chain = ApprovalService().build_approval_chain(db, report)

        assert chain.level_numbers() == [1, 2]
        assert not any(stub.is_additional_approval for stub in chain.approvers())

    def test_threshold_is_inclusive(self, db, factory, org, evaluator, base_chain):
        factory.rule(org.company, threshold_value=5000, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=5000)

        stubs = evaluator.evaluate(db, report, base_chain)

        assert [stub.user_id for stub in stubs] == [org.cfo.id]
        assert stubs[0].level == 0

    def test_rule_duplicating_base_approver_adds_nothing(self, db, factory, org):
        """Rule naming the L1 manager leaves the chain as it was"""
        factory.rule(org.company, threshold_value=1000, approver_user_id=org.manager.id)
        report = factory.report(org.company, org.employee, total_amount=6000)

        chain = ApprovalService().build_approval_chain(db, report)

        assert chain.level_numbers() == [1, 2]
        assert [stub.user_id for stub in chain.approvers()] == [org.manager.id, org.sales_bh.id]

    def test_rules_resolving_same_user_add_one_level(self, db, factory, org, evaluator, base_chain):
        factory.rule(org.company, threshold_value=1000, approver_user_id=org.cfo.id)
        factory.rule(org.company, threshold_value=2000, approver_role_id=org.finance.id)
        report = factory.report(org.company, org.employee, total_amount=6000)

        stubs = evaluator.evaluate(db, report, base_chain)

        assert [stub.user_id for stub in stubs] == [org.cfo.id]

    def test_system_role_rule_resolves_first_holder(self, db, factory, org):
        """BUSINESS_HEAD rule picks the corporate head, distinct from the L2 sales head"""
        factory.rule(org.company, threshold_value=5000, approver_role=UserRole.BUSINESS_HEAD)
        report = factory.report(org.company, org.employee, total_amount=6000)

        chain = ApprovalService().build_approval_chain(db, report)

        assert chain.level_numbers() == [1, 2, 3]
        stub = chain.levels[2].approvers[0]
        assert stub.user_id == org.corporate_bh.id
        assert stub.role == "Business Head"

    def test_inactive_rule_is_ignored(self, db, factory, org, evaluator, base_chain):
        rule = factory.rule(org.company, threshold_value=1000, approver_user_id=org.cfo.id)
        rule.active = False
        db.commit()
        report = factory.report(org.company, org.employee, total_amount=6000)

        assert evaluator.evaluate(db, report, base_chain) == []

    def test_missing_threshold_raises_internally(self, db, factory, org, evaluator):
        rule = factory.rule(org.company, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=6000)

        with pytest.raises(RuleEvaluationError):
            evaluator.trigger_reason(db, report, rule)

        assert evaluator.evaluate(db, report) == []


class TestApproverResolution:
    """User > custom role > system role"""

    def test_specific_user_wins(self, db, factory, org, evaluator):
        rule = factory.rule(
            org.company, threshold_value=1,
            approver_user_id=org.accountant.id, approver_role_id=org.finance.id
        )
        report = factory.report(org.company, org.employee)

        identity = evaluator.resolve_approver(db, rule, report)

        assert identity.user_id == org.accountant.id

    def test_custom_role_resolves_lowest_id_holder(self, db, factory, org, evaluator):
        rule = factory.rule(org.company, threshold_value=1, approver_role_id=org.finance.id)
        report = factory.report(org.company, org.employee)

        identity = evaluator.resolve_approver(db, rule, report)

        assert identity.user_id == org.cfo.id
        assert identity.role_label == "Finance"
        assert identity.role_id == org.finance.id

    def test_inactive_user_falls_back_to_role(self, db, factory, org, evaluator):
        org.admin.is_active = False
        db.commit()
        rule = factory.rule(
            org.company, threshold_value=1,
            approver_user_id=org.admin.id, approver_role_id=org.finance.id
        )
        report = factory.report(org.company, org.employee)

        identity = evaluator.resolve_approver(db, rule, report)

        assert identity.user_id == org.cfo.id

    def test_submitter_is_never_selected(self, db, factory, org, evaluator):
        """CFO submitting: the Finance role resolves to the other holder"""
        rule = factory.rule(org.company, threshold_value=1, approver_role_id=org.finance.id)
        report = factory.report(org.company, org.cfo)

        identity = evaluator.resolve_approver(db, rule, report)

        assert identity.user_id == org.accountant.id

    def test_unresolvable_rule_is_dropped(self, db, factory, org, evaluator, base_chain):
        empty_role = factory.role(org.company, "Treasury")
        factory.rule(org.company, threshold_value=1, approver_role_id=empty_role.id)
        report = factory.report(org.company, org.employee, total_amount=6000)

        assert evaluator.evaluate(db, report, base_chain) == []


class TestBudgetRules:
    """PROJECT_BUDGET_EXCEEDS and COST_CENTRE_BUDGET_EXCEEDS"""

    def test_project_spend_reaching_threshold_triggers(self, db, factory, org, evaluator, base_chain):
        """8,000 spent + 1,500 reaches 90% of 10,000"""
        project = factory.project(org.company, budget=10000, spent_amount=8000, threshold_percentage=90)
        factory.rule(org.company, PROJECT, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=1500, project=project)

        stubs = evaluator.evaluate(db, report, base_chain)

        assert [stub.user_id for stub in stubs] == [org.cfo.id]
        assert "Apollo" in stubs[0].trigger_reason
        assert "90%" in stubs[0].trigger_reason

    def test_project_spend_below_threshold(self, db, factory, org, evaluator, base_chain):
        project = factory.project(org.company, budget=10000, spent_amount=8000, threshold_percentage=90)
        factory.rule(org.company, PROJECT, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=500, project=project)

        assert evaluator.evaluate(db, report, base_chain) == []

    def test_rule_percentage_overrides_project(self, db, factory, org, evaluator, base_chain):
        project = factory.project(org.company, budget=10000, spent_amount=0, threshold_percentage=100)
        factory.rule(org.company, PROJECT, threshold_percentage=50, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=5000, project=project)

        assert len(evaluator.evaluate(db, report, base_chain)) == 1

    def test_report_without_project_is_not_evaluated(self, db, factory, org, evaluator, base_chain):
        factory.rule(org.company, PROJECT, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=100000)

        assert evaluator.evaluate(db, report, base_chain) == []

    def test_project_without_budget_skips_rule(self, db, factory, org, evaluator, base_chain):
        project = factory.project(org.company, budget=None)
        rule = factory.rule(org.company, PROJECT, approver_user_id=org.cfo.id)
        report = factory.report(org.company, org.employee, total_amount=100000, project=project)

        with pytest.raises(RuleEvaluationError):
            evaluator.trigger_reason(db, report, rule)

        assert evaluator.evaluate(db, report, base_chain) == []

    def test_cost_centre_trigger(self, db, factory, org, evaluator, base_chain):
        centre = factory.cost_centre(org.company, budget=2000, spent_amount=1900)
        factory.rule(org.company, COST_CENTRE, approver_role=UserRole.ADMIN)
        report = factory.report(org.company, org.employee, total_amount=100, cost_centre=centre)

        stubs = evaluator.evaluate(db, report, base_chain)

        assert [stub.user_id for stub in stubs] == [org.admin.id]
        assert stubs[0].role == "Admin"
        assert "Operations" in stubs[0].trigger_reason
