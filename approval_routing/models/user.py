"""
User Model
Users, companies and custom roles that make up the approver directory
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, Table
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from approval_routing.config.database import Base
from approval_routing.config.settings import settings


class UserRole(str, enum.Enum):
    """System roles"""
    EMPLOYEE = "employee"
    MANAGER = "manager"
    BUSINESS_HEAD = "business_head"
    ACCOUNTANT = "accountant"
    ADMIN = "admin"
    COMPANY_ADMIN = "company_admin"
    SUPER_ADMIN = "super_admin"


# Custom role membership
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)


class Company(Base):
    """Company (tenant) model"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)

    # Depth of the manager-hierarchy fallback chain (L1 manager, L2 business head, L3+ climbing)
    approval_levels = Column(Integer, default=settings.DEFAULT_HIERARCHY_LEVELS, nullable=False)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    users = relationship("User", back_populates="company")
    roles = relationship("Role", back_populates="company")

    def __repr__(self):
        return f"<Company {self.name}>"

    def hierarchy_depth(self) -> int:
        """Hierarchy fallback depth clamped to the legacy L1-L5 range"""
        depth = self.approval_levels or settings.DEFAULT_HIERARCHY_LEVELS
        return max(1, min(depth, settings.MAX_MAPPED_LEVELS))


class Role(Base):
    """Custom company role (e.g. Finance, Project Lead)"""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    company = relationship("Company", back_populates="roles")
    users = relationship("User", secondary=user_roles, back_populates="custom_roles")

    def __repr__(self):
        return f"<Role {self.name}>"


class User(Base):
    """User model"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)

    # System role
    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # Organization
    department = Column(String, nullable=True, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="users")
    manager = relationship("User", remote_side=[id], foreign_keys=[manager_id])
    custom_roles = relationship("Role", secondary=user_roles, back_populates="users", order_by="Role.id")

    def __repr__(self):
        return f"<User {self.username} ({self.role.value})>"

    @property
    def role_ids(self) -> set:
        """IDs of the custom roles held by this user"""
        return {role.id for role in self.custom_roles}

    def display_role(self) -> str:
        """Label used when this user is snapshotted into an approval chain"""
        if self.custom_roles:
            return self.custom_roles[0].name
        return self.role.value.replace("_", " ").title()

    def is_super_admin(self) -> bool:
        """Super admins may act across company boundaries"""
        return self.role == UserRole.SUPER_ADMIN
