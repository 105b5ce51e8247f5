"""
Test Fixtures
SQLite database per test, model factories and a seeded organisation
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from approval_routing.config.database import init_db, get_db
from approval_routing.models.approval_matrix import ApprovalMatrix, ApprovalMatrixLevel, ApprovalType, ParallelRule
from approval_routing.models.approval_profile import EmployeeApprovalProfile
from approval_routing.models.approval_rule import ApprovalRule, ApprovalRuleTriggerType
from approval_routing.models.approver_mapping import ApproverMapping
from approval_routing.models.budget import Project, CostCentre
from approval_routing.models.expense_report import ExpenseReport, ExpenseReportStatus
from approval_routing.models.user import Company, Role, User, UserRole
from approval_routing.services.auth_service import auth_service


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database file for each test"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False}
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Creates and commits model instances"""

    def __init__(self, db):
        self.db = db
        self.counter = 0

    def save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def company(self, name="Acme", approval_levels=2):
        return self.save(Company(name=name, approval_levels=approval_levels))

    def role(self, company, name):
        return self.save(Role(company_id=company.id, name=name))

    def user(self, company, name, role=UserRole.EMPLOYEE, department=None, manager=None, custom_roles=(), is_active=True):
        self.counter += 1
        username = f"{name.lower().replace(' ', '_')}_{self.counter}"
        user = User(
            company_id=company.id,
            email=f"{username}@example.com",
            username=username,
            full_name=name,
            role=role,
            department=department,
            manager_id=manager.id if manager else None,
            is_active=is_active
        )
        user.custom_roles = list(custom_roles)
        return self.save(user)

    def report(self, company, employee, total_amount=1000.0, project=None, cost_centre=None, name="Travel"):
        return self.save(
            ExpenseReport(
                company_id=company.id,
                user_id=employee.id,
                name=name,
                total_amount=total_amount,
                currency="INR",
                status=ExpenseReportStatus.DRAFT,
                project_id=project.id if project else None,
                cost_centre_id=cost_centre.id if cost_centre else None
            )
        )

    def matrix(self, company, levels, name="Default", is_active=True):
        """levels: dicts of ApprovalMatrixLevel columns"""
        matrix = ApprovalMatrix(company_id=company.id, name=name, is_active=is_active)
        matrix.levels = [ApprovalMatrixLevel(**level) for level in levels]
        return self.save(matrix)

    def profile(self, company, employee, approver_chain, active=True, version=1):
        return self.save(
            EmployeeApprovalProfile(
                user_id=employee.id,
                company_id=company.id,
                approver_chain=approver_chain,
                active=active,
                version=version
            )
        )

    def mapping(self, company, employee, levels):
        """levels: {level number: approver}"""
        return self.save(
            ApproverMapping(
                user_id=employee.id,
                company_id=company.id,
                is_active=True,
                **{f"level{level}_approver_id": user.id for level, user in levels.items()}
            )
        )

    def rule(self, company, trigger_type=ApprovalRuleTriggerType.REPORT_AMOUNT_EXCEEDS, **fields):
        return self.save(ApprovalRule(company_id=company.id, trigger_type=trigger_type, active=True, **fields))

    def project(self, company, budget, spent_amount=0.0, threshold_percentage=100.0, name="Apollo"):
        return self.save(
            Project(
                company_id=company.id,
                name=name,
                budget=budget,
                spent_amount=spent_amount,
                threshold_percentage=threshold_percentage
            )
        )

    def cost_centre(self, company, budget, spent_amount=0.0, threshold_percentage=100.0, name="Operations"):
        return self.save(
            CostCentre(
                company_id=company.id,
                name=name,
                budget=budget,
                spent_amount=spent_amount,
                threshold_percentage=threshold_percentage
            )
        )


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def org(factory):
    """
    Seeded organisation:

        corporate_bh (BUSINESS_HEAD, Corporate)   lowest id of all business heads
        sales_bh     (BUSINESS_HEAD, Sales)
          manager    (MANAGER, Sales)
            employee (EMPLOYEE, Sales)
        cfo, accountant  hold the custom role "Finance"
        admin        (ADMIN)
    """
    company = factory.company()
    finance = factory.role(company, "Finance")
    corporate_bh = factory.user(company, "Corporate Head", UserRole.BUSINESS_HEAD, "Corporate")
    sales_bh = factory.user(company, "Sales Head", UserRole.BUSINESS_HEAD, "Sales")
    manager = factory.user(company, "Manager", UserRole.MANAGER, "Sales", manager=sales_bh)
    employee = factory.user(company, "Employee", UserRole.EMPLOYEE, "Sales", manager=manager)
    cfo = factory.user(company, "CFO", UserRole.ACCOUNTANT, "Finance", custom_roles=[finance])
    accountant = factory.user(company, "Accountant", UserRole.ACCOUNTANT, "Finance", custom_roles=[finance])
    admin = factory.user(company, "Admin", UserRole.ADMIN)

    return SimpleNamespace(
        company=company,
        finance=finance,
        corporate_bh=corporate_bh,
        sales_bh=sales_bh,
        manager=manager,
        employee=employee,
        cfo=cfo,
        accountant=accountant,
        admin=admin
    )


@pytest.fixture
def client(session_factory):
    """TestClient bound to the per-test database"""
    from approval_routing.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user):
    """Bearer header for a user"""
    token = auth_service.create_token(user)["access_token"]
    return {"Authorization": f"Bearer {token}"}


SEQUENTIAL = ApprovalType.SEQUENTIAL
PARALLEL = ApprovalType.PARALLEL
ALL = ParallelRule.ALL
ANY = ParallelRule.ANY
