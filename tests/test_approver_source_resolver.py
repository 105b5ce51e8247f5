"""
Approver Source Resolver Tests
Profile, matrix, mapping and hierarchy tiers of base chain resolution
"""

import pytest

from conftest import SEQUENTIAL, PARALLEL, ALL, ANY
from approval_routing.engine.approver_source import RoleSource, UserSource
from approval_routing.exceptions import NoApproverResolvedError, ResourceNotFoundError
from approval_routing.models.approval import ChainSource
from approval_routing.models.user import UserRole
from approval_routing.services.approver_source_resolver import ApproverSourceResolver


@pytest.fixture
def resolver():
    return ApproverSourceResolver()


class TestProfileTier:
    """Active personalized profile replaces the matrix"""

    def test_profile_replaces_matrix(self, db, factory, org, resolver):
        """Profile with Finance then PARALLEL/ALL users yields exactly those two levels"""
        factory.matrix(org.company, [
            {"level_number": 1, "approver_user_ids": [org.admin.id]},
            {"level_number": 2, "approver_user_ids": [org.corporate_bh.id]},
            {"level_number": 3, "approver_user_ids": [org.sales_bh.id]},
        ])
        profile = factory.profile(org.company, org.employee, [
            {"level": 1, "mode": "SEQUENTIAL", "roles": [org.finance.id]},
            {"level": 2, "mode": "PARALLEL", "approvalType": "ALL",
             "approverUserIds": [org.manager.id, org.sales_bh.id]},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.PROFILE
        assert chain.source_id == profile.id
        assert [level.level_number for level in chain.levels] == [1, 2]
        assert chain.levels[0].mode == SEQUENTIAL
        assert chain.levels[0].source == RoleSource((org.finance.id,))
        assert chain.levels[1].mode == PARALLEL
        assert chain.levels[1].parallel_rule == ALL
        assert chain.levels[1].source == UserSource((org.manager.id, org.sales_bh.id))

    def test_inactive_profile_is_ignored(self, db, factory, org, resolver):
        """Inactive profile falls through to the next tier"""
        factory.profile(org.company, org.employee, [
            {"level": 1, "mode": "SEQUENTIAL", "roles": [org.finance.id]},
        ], active=False)

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.HIERARCHY

    def test_empty_profile_falls_through(self, db, factory, org, resolver):
        """Profile without levels does not produce an empty chain"""
        factory.profile(org.company, org.employee, [])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.HIERARCHY

    def test_parallel_profile_level_defaults_to_all(self, db, factory, org, resolver):
        factory.profile(org.company, org.employee, [
            {"level": 1, "mode": "PARALLEL", "approverUserIds": [org.cfo.id, org.accountant.id]},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.levels[0].parallel_rule == ALL


class TestMatrixTier:
    """Active company matrix"""

    def test_enabled_levels_ascending(self, db, factory, org, resolver):
        """Disabled levels are left out, the rest are sorted"""
        matrix = factory.matrix(org.company, [
            {"level_number": 3, "approver_role_ids": [org.finance.id]},
            {"level_number": 1, "approver_user_ids": [org.manager.id]},
            {"level_number": 2, "approver_user_ids": [org.sales_bh.id], "enabled": False},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.MATRIX
        assert chain.source_id == matrix.id
        assert [level.level_number for level in chain.levels] == [1, 3]

    def test_users_take_precedence_over_roles(self, db, factory, org, resolver):
        factory.matrix(org.company, [
            {"level_number": 1, "approver_user_ids": [org.admin.id], "approver_role_ids": [org.finance.id]},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.levels[0].source == UserSource((org.admin.id,))

    def test_parallel_any_kept(self, db, factory, org, resolver):
        factory.matrix(org.company, [
            {"level_number": 1, "approval_type": PARALLEL, "parallel_rule": ANY,
             "approver_user_ids": [org.cfo.id, org.accountant.id]},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.levels[0].parallel_rule == ANY

    def test_matrix_without_enabled_levels_falls_through(self, db, factory, org, resolver):
        factory.matrix(org.company, [
            {"level_number": 1, "approver_user_ids": [org.admin.id], "enabled": False},
        ])

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.HIERARCHY

    def test_mapping_overlays_matrix_level(self, db, factory, org, resolver):
        """Mapped approver replaces the matrix approver at the same level only"""
        factory.matrix(org.company, [
            {"level_number": 1, "approver_user_ids": [org.manager.id]},
            {"level_number": 2, "approver_role_ids": [org.finance.id]},
        ])
        factory.mapping(org.company, org.employee, {1: org.admin})

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.MAPPING
        assert chain.levels[0].source == UserSource((org.admin.id,))
        assert chain.levels[1].source == RoleSource((org.finance.id,))


class TestHierarchyTier:
    """Manager hierarchy fallback"""

    def test_manager_then_business_head(self, db, org, resolver):
        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.HIERARCHY
        assert [level.level_number for level in chain.levels] == [1, 2]
        assert chain.levels[0].source == UserSource((org.manager.id,))
        assert chain.levels[0].role_label == "Manager"
        assert chain.levels[1].source == UserSource((org.sales_bh.id,))
        assert chain.levels[1].role_label == "Business Head"

    def test_department_business_head_when_managers_manager_is_not_one(self, db, factory, org, resolver):
        """Manager reporting to a non business head: department head is used"""
        company = org.company
        director = factory.user(company, "Director", UserRole.MANAGER, "Sales")
        team_lead = factory.user(company, "Team Lead", UserRole.MANAGER, "Sales", manager=director)
        engineer = factory.user(company, "Engineer", UserRole.EMPLOYEE, "Sales", manager=team_lead)

        chain = resolver.resolve(db, engineer.id, company.id)

        assert chain.levels[0].source == UserSource((team_lead.id,))
        assert chain.levels[1].source == UserSource((org.sales_bh.id,))

    def test_company_fallback_business_head(self, db, factory, org, resolver):
        """No department head: first company business head by id"""
        lead = factory.user(org.company, "Ops Lead", UserRole.MANAGER, "Operations")
        operator = factory.user(org.company, "Operator", UserRole.EMPLOYEE, "Operations", manager=lead)

        chain = resolver.resolve(db, operator.id, org.company.id)

        assert chain.levels[1].source == UserSource((org.corporate_bh.id,))

    def test_deeper_levels_climb_the_manager_chain(self, db, factory, resolver):
        company = factory.company(approval_levels=3)
        ceo = factory.user(company, "CEO", UserRole.COMPANY_ADMIN)
        head = factory.user(company, "Head", UserRole.BUSINESS_HEAD, "R&D", manager=ceo)
        manager = factory.user(company, "Manager", UserRole.MANAGER, "R&D", manager=head)
        employee = factory.user(company, "Employee", UserRole.EMPLOYEE, "R&D", manager=manager)

        chain = resolver.resolve(db, employee.id, company.id)

        assert [level.source for level in chain.levels] == [
            UserSource((manager.id,)), UserSource((head.id,)), UserSource((ceo.id,))
        ]
        assert chain.levels[2].role_label == "Company Admin"

    def test_inactive_manager_is_skipped(self, db, factory, org, resolver):
        """Levels are renumbered compactly when an approver is missing"""
        org.manager.is_active = False
        db.commit()

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert [level.level_number for level in chain.levels] == [1]
        assert chain.levels[0].source == UserSource((org.sales_bh.id,))

    def test_mapping_replaces_hierarchy_level(self, db, factory, org, resolver):
        factory.mapping(org.company, org.employee, {2: org.cfo})

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.MAPPING
        assert chain.levels[0].source == UserSource((org.manager.id,))
        assert chain.levels[1].source == UserSource((org.cfo.id,))

    def test_mapping_beyond_depth_is_appended(self, db, factory, org, resolver):
        factory.mapping(org.company, org.employee, {4: org.cfo})

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert [level.source for level in chain.levels] == [
            UserSource((org.manager.id,)), UserSource((org.sales_bh.id,)), UserSource((org.cfo.id,))
        ]
        assert [level.level_number for level in chain.levels] == [1, 2, 3]

    def test_self_mapping_is_ignored(self, db, factory, org, resolver):
        factory.mapping(org.company, org.employee, {1: org.employee})

        chain = resolver.resolve(db, org.employee.id, org.company.id)

        assert chain.source == ChainSource.HIERARCHY
        assert chain.levels[0].source == UserSource((org.manager.id,))

    def test_no_approver_anywhere_raises(self, db, factory, resolver):
        company = factory.company(name="Solo")
        founder = factory.user(company, "Founder", UserRole.EMPLOYEE)

        with pytest.raises(NoApproverResolvedError):
            resolver.resolve(db, founder.id, company.id)

    def test_unknown_employee_raises(self, db, org, resolver):
        with pytest.raises(ResourceNotFoundError):
            resolver.resolve(db, 9999, org.company.id)
