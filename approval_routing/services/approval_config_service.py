"""
Approval Configuration Service
Admin operations on profiles, legacy mappings, budget rules, matrices and custom roles
"""

from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from approval_routing.config.settings import settings
from approval_routing.exceptions import ConfigurationError, ResourceNotFoundError
from approval_routing.models.approval_matrix import ApprovalMatrix, ApprovalMatrixLevel, ApprovalType, ParallelRule
from approval_routing.models.approval_profile import EmployeeApprovalProfile
from approval_routing.models.approval_rule import ApprovalRule, ApprovalRuleTriggerType
from approval_routing.models.approver_mapping import ApproverMapping
from approval_routing.models.user import Role, User, UserRole
from approval_routing.services.directory_service import directory_service
from approval_routing.utils.logger import setup_logger, log_audit

logger = setup_logger()


# Fields an admin may change on an existing rule
RULE_FIELDS = (
    "trigger_type", "threshold_value", "threshold_percentage",
    "approver_user_id", "approver_role_id", "approver_role",
    "active", "description",
)


class ApprovalConfigService:
    """Service for approval configuration"""

    def __init__(self, directory=None):
        self.directory = directory or directory_service

    # ==================== PROFILES ====================

    def get_active_profile(self, db: Session, company_id: int, user_id: int) -> Optional[EmployeeApprovalProfile]:
        """Active approval profile of an employee, if any"""
        return db.query(EmployeeApprovalProfile).filter(
            EmployeeApprovalProfile.user_id == user_id,
            EmployeeApprovalProfile.company_id == company_id,
            EmployeeApprovalProfile.active == True
        ).order_by(EmployeeApprovalProfile.version.desc()).first()

    def set_profile(
        self,
        db: Session,
        company_id: int,
        user_id: int,
        approver_chain: List[Dict[str, Any]],
        actor_id: Optional[int] = None,
        source: str = "manual",
        reasoning_summary: Optional[str] = None,
        confidence_score: Optional[float] = None
    ) -> EmployeeApprovalProfile:
        """
        Replace an employee's personalized approval chain

        The previous active profile is deactivated and the new one gets the
        next version number.

        Args:
            db: Database session
            company_id: Company of the employee
            user_id: Employee the profile applies to
            approver_chain: List of {"level", "mode", "approvalType", "roles", "approverUserIds"}
            actor_id: Admin making the change
            source: Origin of the profile (manual, ai)
            reasoning_summary: Why this chain was chosen
            confidence_score: Confidence of a generated profile

        Returns:
            EmployeeApprovalProfile: New active profile

        Raises:
            ResourceNotFoundError: Employee not in the company
            ConfigurationError: Chain is empty or references unknown approvers
        """
        self._require_user(db, user_id, company_id)
        chain = self.validate_profile_chain(db, company_id, user_id, approver_chain)

        latest_version = db.query(func.max(EmployeeApprovalProfile.version)).filter(
            EmployeeApprovalProfile.user_id == user_id,
            EmployeeApprovalProfile.company_id == company_id
        ).scalar() or 0

        self._deactivate_profiles(db, company_id, user_id)

        profile = EmployeeApprovalProfile(
            user_id=user_id,
            company_id=company_id,
            approver_chain=chain,
            source=source,
            reasoning_summary=reasoning_summary,
            confidence_score=confidence_score,
            active=True,
            version=latest_version + 1
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)

        log_audit(actor_id, "profile_set", f"user={user_id} version={profile.version} levels={len(chain)}")
        logger.info(f"Approval profile v{profile.version} set for user {user_id}")
        return profile

    def clear_profile(self, db: Session, company_id: int, user_id: int, actor_id: Optional[int] = None) -> int:
        """
        Deactivate an employee's profile so the matrix applies again

        Returns:
            int: Number of profiles deactivated
        """
        count = self._deactivate_profiles(db, company_id, user_id)
        db.commit()

        log_audit(actor_id, "profile_cleared", f"user={user_id} deactivated={count}")
        logger.info(f"Cleared {count} approval profile(s) for user {user_id}")
        return count

    def validate_profile_chain(
        self,
        db: Session,
        company_id: int,
        user_id: int,
        approver_chain: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Validate and normalize a profile chain

        Returns:
            Normalized chain sorted by level
        """
        if not approver_chain:
            raise ConfigurationError("Approval profile must contain at least one level")

        normalized = []
        seen_levels = set()
        for entry in approver_chain:
            level = entry.get("level")
            if not isinstance(level, int) or level < 1:
                raise ConfigurationError(f"Invalid profile level: {level}")
            if level in seen_levels:
                raise ConfigurationError(f"Duplicate profile level: {level}")
            seen_levels.add(level)

            try:
                mode = ApprovalType(entry.get("mode") or ApprovalType.SEQUENTIAL.value)
                parallel_rule = ParallelRule(entry["approvalType"]) if entry.get("approvalType") else None
            except ValueError as e:
                raise ConfigurationError(f"Invalid mode at level {level}: {e}")

            user_ids = [int(value) for value in entry.get("approverUserIds") or []]
            role_ids = [int(value) for value in entry.get("roles") or []]
            if not user_ids and not role_ids:
                raise ConfigurationError(f"Level {level} names no approver users or roles")

            if user_id in user_ids:
                raise ConfigurationError(f"Employee {user_id} cannot approve their own reports (level {level})")

            active_ids = {user.id for user in self.directory.get_active_users(db, user_ids, company_id)}
            unknown = [value for value in user_ids if value not in active_ids]
            if unknown:
                raise ConfigurationError(f"Level {level} references inactive or unknown users: {unknown}")

            for role_id in role_ids:
                if not self.directory.get_role(db, role_id, company_id):
                    raise ConfigurationError(f"Level {level} references unknown role {role_id}")

            normalized.append({
                "level": level,
                "mode": mode.value,
                "approvalType": (parallel_rule or ParallelRule.ALL).value if mode == ApprovalType.PARALLEL else None,
                "roles": role_ids,
                "approverUserIds": user_ids,
            })

        return sorted(normalized, key=lambda item: item["level"])

    def _deactivate_profiles(self, db: Session, company_id: int, user_id: int) -> int:
        profiles = db.query(EmployeeApprovalProfile).filter(
            EmployeeApprovalProfile.user_id == user_id,
            EmployeeApprovalProfile.company_id == company_id,
            EmployeeApprovalProfile.active == True
        ).all()
        for profile in profiles:
            profile.active = False
        return len(profiles)

    # ==================== LEGACY MAPPINGS ====================

    def get_mapping(self, db: Session, company_id: int, user_id: int) -> Optional[ApproverMapping]:
        """Active approver mapping of an employee, if any"""
        return db.query(ApproverMapping).filter(
            ApproverMapping.user_id == user_id,
            ApproverMapping.company_id == company_id,
            ApproverMapping.is_active == True
        ).order_by(ApproverMapping.id.desc()).first()

    def upsert_mapping(
        self,
        db: Session,
        company_id: int,
        user_id: int,
        levels: Dict[int, Optional[int]],
        actor_id: Optional[int] = None
    ) -> ApproverMapping:
        """
        Set the mapped approvers of an employee

        Args:
            db: Database session
            company_id: Company of the employee
            user_id: Employee the mapping applies to
            levels: Level number (1-5) -> approver user id, None to leave a level unmapped
            actor_id: Admin making the change

        Returns:
            ApproverMapping: Active mapping

        Raises:
            ConfigurationError: Level out of range, self-approval or unusable approver
        """
        self._require_user(db, user_id, company_id)

        cleaned = {int(level): approver_id for level, approver_id in levels.items() if approver_id is not None}
        if not cleaned:
            raise ConfigurationError("Approver mapping must name at least one approver")

        for level, approver_id in cleaned.items():
            if level < 1 or level > settings.MAX_MAPPED_LEVELS:
                raise ConfigurationError(f"Mapped level must be between 1 and {settings.MAX_MAPPED_LEVELS}: {level}")
            if approver_id == user_id:
                raise ConfigurationError(f"Employee {user_id} cannot approve their own reports (level {level})")
            if not self.directory.get_active_user(db, approver_id, company_id):
                raise ConfigurationError(f"Mapped approver {approver_id} is inactive or outside the company")

        mapping = self.get_mapping(db, company_id, user_id)
        if mapping is None:
            mapping = ApproverMapping(user_id=user_id, company_id=company_id, created_by=actor_id, is_active=True)
            db.add(mapping)

        for level in range(1, settings.MAX_MAPPED_LEVELS + 1):
            setattr(mapping, f"level{level}_approver_id", cleaned.get(level))
        mapping.updated_by = actor_id

        db.commit()
        db.refresh(mapping)

        log_audit(actor_id, "mapping_upserted", f"user={user_id} levels={sorted(cleaned)}")
        logger.info(f"Approver mapping set for user {user_id}: {cleaned}")
        return mapping

    def delete_mapping(self, db: Session, company_id: int, user_id: int, actor_id: Optional[int] = None) -> None:
        """Deactivate the approver mapping of an employee"""
        mapping = self.get_mapping(db, company_id, user_id)
        if not mapping:
            raise ResourceNotFoundError("ApproverMapping", user_id)

        mapping.is_active = False
        mapping.updated_by = actor_id
        db.commit()

        log_audit(actor_id, "mapping_deleted", f"user={user_id}")
        logger.info(f"Approver mapping removed for user {user_id}")

    # ==================== BUDGET RULES ====================

    def list_rules(self, db: Session, company_id: int, include_inactive: bool = False) -> List[ApprovalRule]:
        """Rules of a company in creation order"""
        query = db.query(ApprovalRule).filter(ApprovalRule.company_id == company_id)
        if not include_inactive:
            query = query.filter(ApprovalRule.active == True)
        return query.order_by(ApprovalRule.id).all()

    def get_rule(self, db: Session, company_id: int, rule_id: int) -> ApprovalRule:
        """Get a rule of a company"""
        rule = db.query(ApprovalRule).filter(
            ApprovalRule.id == rule_id,
            ApprovalRule.company_id == company_id
        ).first()
        if not rule:
            raise ResourceNotFoundError("ApprovalRule", rule_id)
        return rule

    def create_rule(self, db: Session, company_id: int, actor_id: Optional[int] = None, **fields) -> ApprovalRule:
        """
        Create a budget rule

        Args:
            db: Database session
            company_id: Company owning the rule
            actor_id: Admin making the change
            **fields: Rule columns (see RULE_FIELDS)

        Returns:
            ApprovalRule: Created rule
        """
        unknown = set(fields) - set(RULE_FIELDS)
        if unknown:
            raise ConfigurationError(f"Unknown rule fields: {sorted(unknown)}")

        rule = ApprovalRule(company_id=company_id, active=fields.pop("active", True), **fields)
        self.validate_rule(db, rule)

        db.add(rule)
        db.commit()
        db.refresh(rule)

        log_audit(actor_id, "rule_created", f"rule={rule.id} trigger={rule.trigger_type.value}")
        logger.info(f"Approval rule {rule.id} created for company {company_id}")
        return rule

    def update_rule(
        self,
        db: Session,
        company_id: int,
        rule_id: int,
        changes: Dict[str, Any],
        actor_id: Optional[int] = None
    ) -> ApprovalRule:
        """Apply changes to a rule and re-validate it"""
        rule = self.get_rule(db, company_id, rule_id)

        unknown = set(changes) - set(RULE_FIELDS)
        if unknown:
            raise ConfigurationError(f"Unknown rule fields: {sorted(unknown)}")

        for key, value in changes.items():
            setattr(rule, key, value)

        try:
            self.validate_rule(db, rule)
        except ConfigurationError:
            db.rollback()
            raise

        db.commit()
        db.refresh(rule)

        log_audit(actor_id, "rule_updated", f"rule={rule.id} fields={sorted(changes)}")
        logger.info(f"Approval rule {rule.id} updated")
        return rule

    def delete_rule(self, db: Session, company_id: int, rule_id: int, actor_id: Optional[int] = None) -> None:
        """Deactivate a rule; approver records that cite it keep their reference"""
        rule = self.get_rule(db, company_id, rule_id)
        rule.active = False
        db.commit()

        log_audit(actor_id, "rule_deleted", f"rule={rule.id}")
        logger.info(f"Approval rule {rule.id} deactivated")

    def validate_rule(self, db: Session, rule: ApprovalRule) -> None:
        """
        Validate a rule's trigger and approver

        Raises:
            ConfigurationError: Rule cannot be evaluated
        """
        try:
            rule.trigger_type = ApprovalRuleTriggerType(rule.trigger_type)
            if rule.approver_role is not None:
                rule.approver_role = UserRole(rule.approver_role)
        except ValueError as e:
            raise ConfigurationError(f"Invalid rule: {e}")

        if rule.trigger_type == ApprovalRuleTriggerType.REPORT_AMOUNT_EXCEEDS:
            if rule.threshold_value is None or rule.threshold_value <= 0:
                raise ConfigurationError("REPORT_AMOUNT_EXCEEDS rules need a positive threshold_value")
        elif rule.threshold_percentage is not None and rule.threshold_percentage <= 0:
            raise ConfigurationError("threshold_percentage must be positive")

        if rule.approver_user_id is None and rule.approver_role_id is None and rule.approver_role is None:
            raise ConfigurationError("Rule needs an approver user, custom role or system role")

        if rule.approver_user_id is not None and not self.directory.get_active_user(db, rule.approver_user_id, rule.company_id):
            raise ConfigurationError(f"Rule approver {rule.approver_user_id} is inactive or outside the company")

        if rule.approver_role_id is not None and not self.directory.get_role(db, rule.approver_role_id, rule.company_id):
            raise ConfigurationError(f"Rule references unknown role {rule.approver_role_id}")

    # ==================== MATRICES ====================

    def list_matrices(self, db: Session, company_id: int) -> List[ApprovalMatrix]:
        """Matrices of a company, newest first"""
        return db.query(ApprovalMatrix).filter(
            ApprovalMatrix.company_id == company_id
        ).order_by(ApprovalMatrix.id.desc()).all()

    def get_matrix(self, db: Session, company_id: int, matrix_id: int) -> ApprovalMatrix:
        """Get a matrix of a company with its levels"""
        matrix = db.query(ApprovalMatrix).filter(
            ApprovalMatrix.id == matrix_id,
            ApprovalMatrix.company_id == company_id
        ).first()
        if not matrix:
            raise ResourceNotFoundError("ApprovalMatrix", matrix_id)
        return matrix

    def get_active_matrix(self, db: Session, company_id: int) -> Optional[ApprovalMatrix]:
        """The matrix currently used for routing, if any"""
        return db.query(ApprovalMatrix).filter(
            ApprovalMatrix.company_id == company_id,
            ApprovalMatrix.is_active == True
        ).order_by(ApprovalMatrix.id.desc()).first()

    def create_matrix(
        self,
        db: Session,
        company_id: int,
        name: str,
        levels: List[Dict[str, Any]],
        actor_id: Optional[int] = None,
        description: Optional[str] = None,
        activate: bool = True
    ) -> ApprovalMatrix:
        """
        Create an approval matrix

        A new matrix replaces the company's active one unless ``activate`` is
        False.

        Args:
            db: Database session
            company_id: Company owning the matrix
            name: Display name
            levels: ApprovalMatrixLevel columns per level (level_number, approval_type,
                parallel_rule, approver_user_ids, approver_role_ids, enabled, skip_allowed, conditions)
            actor_id: Admin making the change
            description: Free text
            activate: Make the new matrix the active one

        Returns:
            ApprovalMatrix: Created matrix

        Raises:
            ConfigurationError: Invalid level numbering, mode or approver
        """
        if not name or not name.strip():
            raise ConfigurationError("Matrix name is required")

        normalized = self.validate_matrix_levels(db, company_id, levels)
        if activate and not any(level["enabled"] for level in normalized):
            raise ConfigurationError("An active matrix needs at least one enabled level")

        matrix = ApprovalMatrix(
            company_id=company_id,
            name=name.strip(),
            description=description,
            is_active=False
        )
        matrix.levels = [ApprovalMatrixLevel(**level) for level in normalized]
        db.add(matrix)
        db.flush()

        if activate:
            self._deactivate_other_matrices(db, company_id, matrix.id)
            matrix.is_active = True

        db.commit()
        db.refresh(matrix)

        log_audit(
            actor_id, "matrix_created",
            f"company={company_id} matrix={matrix.id} levels={[level.level_number for level in matrix.levels]} "
            f"active={matrix.is_active}"
        )
        logger.info(f"Matrix {matrix.id} '{matrix.name}' created for company {company_id}")
        return matrix

    def validate_matrix_levels(
        self,
        db: Session,
        company_id: int,
        levels: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Validate and normalize matrix levels

        Returns:
            Level column dicts sorted by level number
        """
        if not levels:
            raise ConfigurationError("Approval matrix must contain at least one level")

        normalized = []
        seen_levels = set()
        for entry in levels:
            number = entry.get("level_number")
            if not isinstance(number, int) or number < 1:
                raise ConfigurationError(f"Invalid matrix level number: {number}")
            if number in seen_levels:
                raise ConfigurationError(f"Duplicate matrix level number: {number}")
            seen_levels.add(number)

            try:
                mode = ApprovalType(entry.get("approval_type") or ApprovalType.SEQUENTIAL)
                parallel_rule = ParallelRule(entry["parallel_rule"]) if entry.get("parallel_rule") else None
            except ValueError as e:
                raise ConfigurationError(f"Invalid mode at matrix level {number}: {e}")

            user_ids = [int(value) for value in entry.get("approver_user_ids") or []]
            role_ids = [int(value) for value in entry.get("approver_role_ids") or []]
            enabled = entry.get("enabled", True)
            if enabled and not user_ids and not role_ids:
                raise ConfigurationError(f"Matrix level {number} names no approver users or roles")

            active_ids = {user.id for user in self.directory.get_active_users(db, user_ids, company_id)}
            unknown = [value for value in user_ids if value not in active_ids]
            if unknown:
                raise ConfigurationError(f"Matrix level {number} references inactive or unknown users: {unknown}")

            for role_id in role_ids:
                if not self.directory.get_role(db, role_id, company_id):
                    raise ConfigurationError(f"Matrix level {number} references unknown role {role_id}")

            normalized.append({
                "level_number": number,
                "enabled": bool(enabled),
                "approval_type": mode,
                "parallel_rule": (parallel_rule or ParallelRule.ALL) if mode == ApprovalType.PARALLEL else None,
                "approver_user_ids": user_ids,
                "approver_role_ids": role_ids,
                "conditions": list(entry.get("conditions") or []),
                "skip_allowed": bool(entry.get("skip_allowed", False)),
            })

        return sorted(normalized, key=lambda item: item["level_number"])

    def activate_matrix(self, db: Session, company_id: int, matrix_id: int, actor_id: Optional[int] = None) -> ApprovalMatrix:
        """
        Make a matrix the company's only active matrix

        Raises:
            ResourceNotFoundError: Matrix not in the company
            ConfigurationError: Matrix has no enabled level
        """
        matrix = self.get_matrix(db, company_id, matrix_id)

        if not matrix.enabled_levels():
            raise ConfigurationError(f"Matrix {matrix_id} has no enabled level")

        self._deactivate_other_matrices(db, company_id, matrix_id)

        matrix.is_active = True
        db.commit()
        db.refresh(matrix)

        log_audit(actor_id, "matrix_activated", f"company={company_id} matrix={matrix_id}")
        logger.info(f"Matrix {matrix_id} activated for company {company_id}")
        return matrix

    def _deactivate_other_matrices(self, db: Session, company_id: int, matrix_id: int) -> None:
        db.query(ApprovalMatrix).filter(
            ApprovalMatrix.company_id == company_id,
            ApprovalMatrix.id != matrix_id,
            ApprovalMatrix.is_active == True
        ).update({ApprovalMatrix.is_active: False}, synchronize_session=False)

    # ==================== ROLES ====================

    def list_roles(self, db: Session, company_id: int) -> List[Role]:
        """Custom roles of a company by name"""
        return db.query(Role).filter(Role.company_id == company_id).order_by(Role.name, Role.id).all()

    def get_role(self, db: Session, company_id: int, role_id: int) -> Role:
        """Get a custom role of a company"""
        role = self.directory.get_role(db, role_id, company_id)
        if not role:
            raise ResourceNotFoundError("Role", role_id)
        return role

    def create_role(
        self,
        db: Session,
        company_id: int,
        name: str,
        description: Optional[str] = None,
        actor_id: Optional[int] = None
    ) -> Role:
        """
        Create a custom role

        Raises:
            ConfigurationError: Name is blank or already used in the company
        """
        name = self._unique_role_name(db, company_id, name)

        role = Role(company_id=company_id, name=name, description=description)
        db.add(role)
        db.commit()
        db.refresh(role)

        log_audit(actor_id, "role_created", f"role={role.id} name={role.name}")
        logger.info(f"Role {role.id} '{role.name}' created for company {company_id}")
        return role

    def update_role(
        self,
        db: Session,
        company_id: int,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        actor_id: Optional[int] = None
    ) -> Role:
        """Rename a custom role or change its description"""
        role = self.get_role(db, company_id, role_id)

        if name is not None:
            role.name = self._unique_role_name(db, company_id, name, exclude_id=role.id)
        if description is not None:
            role.description = description

        db.commit()
        db.refresh(role)

        log_audit(actor_id, "role_updated", f"role={role.id} name={role.name}")
        logger.info(f"Role {role.id} updated")
        return role

    def delete_role(self, db: Session, company_id: int, role_id: int, actor_id: Optional[int] = None) -> None:
        """
        Delete a custom role and its memberships

        Raises:
            ResourceNotFoundError: Role not in the company
            ConfigurationError: Role is an approver of the active matrix or an active rule
        """
        role = self.get_role(db, company_id, role_id)

        active_matrix = self.get_active_matrix(db, company_id)
        if active_matrix and any(role.id in (level.approver_role_ids or []) for level in active_matrix.levels):
            raise ConfigurationError(f"Role {role.id} is used by the active matrix '{active_matrix.name}'")

        rule_count = db.query(ApprovalRule).filter(
            ApprovalRule.company_id == company_id,
            ApprovalRule.approver_role_id == role.id,
            ApprovalRule.active == True
        ).count()
        if rule_count:
            raise ConfigurationError(f"Role {role.id} is the approver of {rule_count} active rule(s)")

        role.users = []
        db.delete(role)
        db.commit()

        log_audit(actor_id, "role_deleted", f"role={role_id}")
        logger.info(f"Role {role_id} deleted from company {company_id}")

    def _unique_role_name(self, db: Session, company_id: int, name: Optional[str], exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ConfigurationError("Role name is required")

        query = db.query(Role).filter(Role.company_id == company_id, func.lower(Role.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first():
            raise ConfigurationError(f"Role '{name}' already exists")
        return name

    def _require_user(self, db: Session, user_id: int, company_id: int) -> User:
        user = db.query(User).filter(User.id == user_id, User.company_id == company_id).first()
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return user


# Create singleton instance
approval_config_service = ApprovalConfigService()
