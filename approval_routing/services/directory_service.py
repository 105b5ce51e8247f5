"""
Directory Service
Read-only user directory lookups used to resolve approver identities
"""

from sqlalchemy.orm import Session
from typing import Iterable, List, Optional, Set, Tuple

from approval_routing.engine.approver_source import Identity, ResolutionContext
from approval_routing.models.user import User, UserRole, Role
from approval_routing.utils.logger import setup_logger

logger = setup_logger()


# Company-wide business head fallback, in priority order
BUSINESS_HEAD_FALLBACK_ROLES = (UserRole.BUSINESS_HEAD, UserRole.ADMIN, UserRole.COMPANY_ADMIN)


class DirectoryService:
    """Service for user, role and hierarchy lookups"""

    def get_user(self, db: Session, user_id: Optional[int]) -> Optional[User]:
        """Get a user by id"""
        if user_id is None:
            return None
        return db.query(User).filter(User.id == user_id).first()

    def get_active_user(self, db: Session, user_id: Optional[int], company_id: int) -> Optional[User]:
        """
        Get a user only if active and in the given company

        Args:
            db: Database session
            user_id: User id
            company_id: Company the user must belong to

        Returns:
            User or None
        """
        if user_id is None:
            return None
        return db.query(User).filter(
            User.id == user_id,
            User.company_id == company_id,
            User.is_active == True
        ).first()

    def get_active_users(self, db: Session, user_ids: Iterable[int], company_id: int) -> List[User]:
        """Active users of a company, in the order the ids were given"""
        ids = [int(user_id) for user_id in user_ids]
        if not ids:
            return []
        users = db.query(User).filter(
            User.id.in_(ids),
            User.company_id == company_id,
            User.is_active == True
        ).all()
        by_id = {user.id: user for user in users}
        return [by_id[user_id] for user_id in ids if user_id in by_id]

    def first_role_holder(
        self,
        db: Session,
        role_id: int,
        company_id: int,
        excluded: Optional[Set[int]] = None
    ) -> Optional[User]:
        """
        First active holder of a custom role, lowest user id first

        Args:
            db: Database session
            role_id: Custom role id
            company_id: Company to search in
            excluded: User ids that may not be returned

        Returns:
            User or None
        """
        query = db.query(User).join(User.custom_roles).filter(
            Role.id == role_id,
            User.company_id == company_id,
            User.is_active == True
        )
        if excluded:
            query = query.filter(~User.id.in_(list(excluded)))
        return query.order_by(User.id).first()

    def first_with_system_role(
        self,
        db: Session,
        role: UserRole,
        company_id: int,
        department: Optional[str] = None,
        excluded: Optional[Set[int]] = None
    ) -> Optional[User]:
        """First active user with a system role, lowest user id first"""
        query = db.query(User).filter(
            User.role == role,
            User.company_id == company_id,
            User.is_active == True
        )
        if department is not None:
            query = query.filter(User.department == department)
        if excluded:
            query = query.filter(~User.id.in_(list(excluded)))
        return query.order_by(User.id).first()

    def get_role(self, db: Session, role_id: int, company_id: int) -> Optional[Role]:
        """Get a custom role of a company"""
        return db.query(Role).filter(Role.id == role_id, Role.company_id == company_id).first()

    def active_manager(self, db: Session, user: User) -> Optional[User]:
        """Direct manager if present, active and in the same company"""
        if not user or not user.manager_id:
            return None
        return self.get_active_user(db, user.manager_id, user.company_id)

    def select_business_head(
        self,
        db: Session,
        employee: User,
        excluded: Optional[Set[int]] = None
    ) -> Tuple[Optional[User], str]:
        """
        Select the business head for an employee

        Priority:
        1. Manager's manager, if that user has the BUSINESS_HEAD role
        2. First active BUSINESS_HEAD in the employee's department
        3. Company-wide fallback: BUSINESS_HEAD, then ADMIN, then COMPANY_ADMIN

        Args:
            db: Database session
            employee: Submitting employee
            excluded: User ids that may not be selected

        Returns:
            Tuple of (business head or None, selection method)
        """
        excluded = set(excluded or ())
        excluded.add(employee.id)

        manager = self.get_user(db, employee.manager_id)
        if manager and manager.manager_id:
            managers_manager = self.get_active_user(db, manager.manager_id, employee.company_id)
            if (
                managers_manager
                and managers_manager.role == UserRole.BUSINESS_HEAD
                and managers_manager.id not in excluded
            ):
                return managers_manager, "managers_manager"

        if employee.department:
            department_head = self.first_with_system_role(
                db, UserRole.BUSINESS_HEAD, employee.company_id,
                department=employee.department, excluded=excluded
            )
            if department_head:
                return department_head, "department"

        for role in BUSINESS_HEAD_FALLBACK_ROLES:
            fallback = self.first_with_system_role(db, role, employee.company_id, excluded=excluded)
            if fallback:
                if role != UserRole.BUSINESS_HEAD:
                    logger.warning(
                        f"No business head available in company {employee.company_id}, "
                        f"using {role.value} {fallback.id} as fallback"
                    )
                return fallback, "company_fallback"

        logger.warning(f"No business head found for employee {employee.id} - all selection methods exhausted")
        return None, "none"

    def explain_business_head(self, db: Session, employee: User) -> dict:
        """
        Human-readable explanation of how the business head is selected

        Args:
            db: Database session
            employee: Employee to explain the selection for

        Returns:
            dict with explanation, method and business_head_id
        """
        business_head, method = self.select_business_head(db, employee)
        explanations = {
            "managers_manager": "selected via manager hierarchy (manager's manager)",
            "department": f"selected from department {employee.department} (department ownership)",
            "company_fallback": "selected via company-wide fallback",
        }

        if business_head is None:
            return {
                "explanation": "No Business Head found - all selection methods exhausted",
                "method": method,
                "business_head_id": None
            }

        return {
            "explanation": f'Business Head "{business_head.full_name}" {explanations[method]}',
            "method": method,
            "business_head_id": business_head.id
        }

    def resolution_context(self, db: Session, company_id: int, employee_id: int) -> ResolutionContext:
        """
        Directory-backed context for resolving approver sources of one chain

        The submitting employee is placed up front so nobody approves their own report.
        """
        def find_users(user_ids: Tuple[int, ...]) -> List[Identity]:
            return [
                Identity(user.id, user.display_role())
                for user in self.get_active_users(db, user_ids, company_id)
            ]

        def find_role_holder(role_id: int, excluded: Set[int]) -> Optional[Identity]:
            holder = self.first_role_holder(db, role_id, company_id, excluded)
            if holder is None:
                return None
            role = self.get_role(db, role_id, company_id)
            return Identity(holder.id, role.name if role else holder.display_role(), role_id)

        return ResolutionContext(
            find_users=find_users,
            find_role_holder=find_role_holder,
            placed={employee_id}
        )


# Create singleton instance
directory_service = DirectoryService()
