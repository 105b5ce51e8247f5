"""
Approver Source Resolver
Determines the base approval chain of an employee from exactly one source
"""

from sqlalchemy.orm import Session
from typing import Callable, Dict, List, Optional

from approval_routing.engine.approver_source import UserSource, level_source
from approval_routing.engine.chain import BaseChain, ChainLevel
from approval_routing.exceptions import NoApproverResolvedError, ResourceNotFoundError
from approval_routing.models.approval import ChainSource
from approval_routing.models.approval_matrix import ApprovalMatrix, ApprovalType, ParallelRule
from approval_routing.models.approval_profile import EmployeeApprovalProfile
from approval_routing.models.approver_mapping import ApproverMapping
from approval_routing.models.user import User, Company
from approval_routing.services.directory_service import directory_service
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


# Tier signature: (db, employee, company, mapped levels) -> BaseChain or None
SourceTier = Callable[[Session, User, Company, Dict[int, int]], Optional[BaseChain]]


class ApproverSourceResolver:
    """
    Resolves the base chain through an ordered, short-circuiting pipeline:

    1. Active employee approval profile (replaces the matrix entirely)
    2. Active company matrix, with the legacy approver mapping overlaid
    3. Manager hierarchy fallback (manager, business head, climbing)
    """

    def __init__(self, directory=None):
        self.directory = directory or directory_service
        self.tiers: List[SourceTier] = [
            self.profile_tier,
            self.matrix_tier,
            self.hierarchy_tier,
        ]

    def resolve(self, db: Session, employee_id: int, company_id: int) -> BaseChain:
        """
        Resolve the base chain for an employee

        Args:
            db: Database session
            employee_id: Submitting employee
            company_id: Company of the report

        Returns:
            BaseChain from the first tier that produces levels

        Raises:
            ResourceNotFoundError: Employee or company does not exist
            NoApproverResolvedError: No tier could produce a single level
        """
        employee = db.query(User).filter(User.id == employee_id, User.company_id == company_id).first()
        if not employee:
            raise ResourceNotFoundError("User", employee_id)

        company = db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise ResourceNotFoundError("Company", company_id)

        mapped = self.mapped_approvers(db, employee_id, company_id)

        for tier in self.tiers:
            chain = tier(db, employee, company, mapped)
            if chain is not None:
                logger.info(
                    f"Resolved {len(chain.levels)} base level(s) for employee {employee_id} "
                    f"from {chain.source.value}"
                )
                return chain

        logger.warning(f"No approver resolvable for employee {employee_id} in company {company_id}")
        raise NoApproverResolvedError(f"No approver could be resolved for employee {employee_id}")

    def mapped_approvers(self, db: Session, employee_id: int, company_id: int) -> Dict[int, int]:
        """
        Active legacy mapping as level -> approver id, keeping only usable approvers

        Args:
            db: Database session
            employee_id: Employee the mapping belongs to
            company_id: Company of the mapping

        Returns:
            dict of level number to active approver id in the same company
        """
        mapping = db.query(ApproverMapping).filter(
            ApproverMapping.user_id == employee_id,
            ApproverMapping.company_id == company_id,
            ApproverMapping.is_active == True
        ).order_by(ApproverMapping.id.desc()).first()

        if not mapping:
            return {}

        usable = {}
        for level_number, approver_id in mapping.mapped_levels().items():
            if approver_id == employee_id:
                logger.warning(f"Ignoring self-approval in mapping {mapping.id} at L{level_number}")
                continue
            if self.directory.get_active_user(db, approver_id, company_id) is None:
                logger.warning(
                    f"Mapped L{level_number} approver {approver_id} for employee {employee_id} "
                    f"is inactive or outside company {company_id}; ignoring"
                )
                continue
            usable[level_number] = approver_id
        return usable

    def profile_tier(self, db: Session, employee: User, company: Company, mapped: Dict[int, int]) -> Optional[BaseChain]:
        """Active personalized profile, used as-is"""
        profile = db.query(EmployeeApprovalProfile).filter(
            EmployeeApprovalProfile.user_id == employee.id,
            EmployeeApprovalProfile.company_id == company.id,
            EmployeeApprovalProfile.active == True
        ).order_by(EmployeeApprovalProfile.version.desc()).first()

        if not profile:
            return None

        entries = sorted(profile.approver_chain or [], key=lambda entry: entry["level"])
        if not entries:
            logger.warning(f"Active profile {profile.id} of employee {employee.id} has an empty chain; ignoring")
            return None

        levels = []
        for entry in entries:
            mode = ApprovalType(entry.get("mode") or ApprovalType.SEQUENTIAL.value)
            parallel_rule = entry.get("approvalType")
            levels.append(
                ChainLevel(
                    level_number=int(entry["level"]),
                    mode=mode,
                    parallel_rule=ParallelRule(parallel_rule) if parallel_rule else None,
                    source=level_source(entry.get("approverUserIds"), entry.get("roles")),
                )
            )

        return BaseChain(source=ChainSource.PROFILE, levels=levels, source_id=profile.id)

    def matrix_tier(self, db: Session, employee: User, company: Company, mapped: Dict[int, int]) -> Optional[BaseChain]:
        """Active company matrix, enabled levels ascending, mapping overlaid on L1-L5"""
        matrix = db.query(ApprovalMatrix).filter(
            ApprovalMatrix.company_id == company.id,
            ApprovalMatrix.is_active == True
        ).order_by(ApprovalMatrix.id.desc()).first()

        if not matrix:
            return None

        enabled = matrix.enabled_levels()
        if not enabled:
            logger.warning(f"Active matrix {matrix.id} of company {company.id} has no enabled level; ignoring")
            return None

        levels = []
        overlaid = False
        for level in enabled:
            source = level_source(level.approver_user_ids, level.approver_role_ids)
            if level.level_number in mapped:
                source = UserSource((mapped[level.level_number],))
                overlaid = True
            levels.append(
                ChainLevel(
                    level_number=level.level_number,
                    mode=level.approval_type,
                    parallel_rule=level.parallel_rule,
                    source=source,
                    skip_allowed=level.skip_allowed,
                    conditions=list(level.conditions or []),
                )
            )

        source = ChainSource.MAPPING if overlaid else ChainSource.MATRIX
        return BaseChain(source=source, levels=levels, source_id=matrix.id)

    def hierarchy_tier(self, db: Session, employee: User, company: Company, mapped: Dict[int, int]) -> Optional[BaseChain]:
        """
        Manager hierarchy fallback

        L1 is the direct manager, L2 the business head, L3 and above climb the
        manager chain up to the company's configured depth. Mapped approvers
        replace the identity at their level; mapped levels beyond the depth are
        appended.
        """
        depth = company.hierarchy_depth()
        last_position = max([depth] + list(mapped.keys()))
        placed = {employee.id}
        cursor = employee
        approvers = []

        for position in range(1, last_position + 1):
            approver = None

            if position in mapped and mapped[position] not in placed:
                approver = self.directory.get_user(db, mapped[position])
            elif position <= depth:
                if position == 1:
                    approver = self.directory.active_manager(db, employee)
                elif position == 2:
                    approver, _ = self.directory.select_business_head(db, employee, excluded=placed)
                else:
                    approver = self.climb(db, cursor, placed)

            if approver is None or approver.id in placed:
                continue

            if position in mapped or position > 2:
                label = approver.display_role()
            elif position == 1:
                label = "Manager"
            else:
                label = "Business Head"

            placed.add(approver.id)
            cursor = approver
            approvers.append((approver, label))

        if not approvers:
            return None

        levels = [
            ChainLevel(
                level_number=index,
                mode=ApprovalType.SEQUENTIAL,
                source=UserSource((approver.id,)),
                role_label=label,
            )
            for index, (approver, label) in enumerate(approvers, start=1)
        ]
        source = ChainSource.MAPPING if mapped else ChainSource.HIERARCHY
        return BaseChain(source=source, levels=levels)

    def climb(self, db: Session, start: User, placed: set) -> Optional[User]:
        """Next active manager above ``start`` that is not yet in the chain"""
        visited = set()
        current = self.directory.active_manager(db, start)
        while current is not None and current.id not in visited:
            if current.id not in placed:
                return current
            visited.add(current.id)
            current = self.directory.active_manager(db, current)
        return None


# Create singleton instance
approver_source_resolver = ApproverSourceResolver()
