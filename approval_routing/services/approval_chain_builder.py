"""
Approval Chain Builder
Merges the base chain and rule-triggered approvers into one persisted chain
"""

from sqlalchemy.orm import Session
from typing import List, Optional, Set

from approval_routing.config.settings import settings
from approval_routing.engine.approver_source import Fail, RoleSource, Skip, resolve_source
from approval_routing.engine.chain import ApprovalChain, ApproverStub, BaseChain, ResolvedLevel
from approval_routing.exceptions import NoApproverResolvedError
from approval_routing.models.approval_matrix import ApprovalType
from approval_routing.models.expense_report import ExpenseReport
from approval_routing.services.directory_service import directory_service
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


class ApprovalChainBuilder:
    """Service that resolves a base chain into concrete, ordered approver levels"""

    def __init__(self, directory=None):
        self.directory = directory or directory_service

    def build(
        self,
        db: Session,
        report: ExpenseReport,
        base_chain: BaseChain,
        additional: Optional[List[ApproverStub]] = None
    ) -> ApprovalChain:
        """
        Build the final chain for a report

        Base levels keep their numbers and are resolved in ascending order.
        A level that resolves to nobody is dropped when skipping is allowed
        and fails the whole build otherwise. Additional approvers not already
        in the chain each get a sequential level after the last base level.

        Args:
            db: Database session
            report: Report being submitted
            base_chain: Output of the approver source resolver
            additional: Output of the budget rule evaluator

        Returns:
            ApprovalChain (possibly empty, which means auto-approval)

        Raises:
            NoApproverResolvedError: A non-skippable level has no approver
        """
        context = self.directory.resolution_context(db, report.company_id, report.user_id)
        levels: List[ResolvedLevel] = []

        for level in sorted(base_chain.levels, key=lambda item: item.level_number):
            result = resolve_source(level.source, level.mode, level.skip_allowed, context, level.role_label)

            if isinstance(result, Skip):
                logger.info(f"Skipping L{level.level_number} for report {report.id}: {result.reason}")
                continue

            if isinstance(result, Fail):
                logger.warning(f"No approver for L{level.level_number} of report {report.id}: {result.reason}")
                raise NoApproverResolvedError(
                    f"No approver could be resolved for level {level.level_number}: {result.reason}",
                    level_number=level.level_number
                )

            levels.append(
                ResolvedLevel(
                    level_number=level.level_number,
                    mode=level.mode,
                    parallel_rule=level.parallel_rule,
                    conditions=level.conditions,
                    approvers=[
                        ApproverStub(
                            user_id=identity.user_id,
                            role=identity.role_label,
                            level=level.level_number,
                            role_id=identity.role_id
                        )
                        for identity in result.identities
                    ]
                )
            )

        base_roles = self.base_role_ids(base_chain, levels)
        max_base = max((level.level_number for level in levels), default=0)
        next_level = max(max(max_base, 1) + 1, settings.MIN_ADDITIONAL_APPROVAL_LEVEL)

        for stub in additional or []:
            if stub.user_id in context.placed:
                logger.info(f"Additional approver {stub.user_id} already in chain for report {report.id}")
                continue
            if stub.role_id is not None and stub.role_id in base_roles:
                logger.info(f"Additional role {stub.role_id} already in chain for report {report.id}")
                continue

            context.placed.add(stub.user_id)
            levels.append(
                ResolvedLevel(
                    level_number=next_level,
                    mode=ApprovalType.SEQUENTIAL,
                    is_additional=True,
                    approvers=[
                        ApproverStub(
                            user_id=stub.user_id,
                            role=stub.role,
                            level=next_level,
                            role_id=stub.role_id,
                            is_additional_approval=True,
                            approval_rule_id=stub.approval_rule_id,
                            trigger_reason=stub.trigger_reason
                        )
                    ]
                )
            )
            next_level += 1

        chain = ApprovalChain(source=base_chain.source, levels=levels, source_id=base_chain.source_id)
        logger.info(
            f"Built chain for report {report.id}: levels {chain.level_numbers()} from {chain.source.value}"
        )
        return chain

    def base_role_ids(self, base_chain: BaseChain, levels: List[ResolvedLevel]) -> Set[int]:
        """Custom role ids configured on, or resolved into, the base chain"""
        role_ids: Set[int] = set()
        for level in base_chain.levels:
            if isinstance(level.source, RoleSource):
                role_ids.update(level.source.role_ids)
        for level in levels:
            role_ids.update(stub.role_id for stub in level.approvers if stub.role_id is not None)
        return role_ids


# Create singleton instance
approval_chain_builder = ApprovalChainBuilder()
