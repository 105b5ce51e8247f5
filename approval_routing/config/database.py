"""
Database Configuration
SQLAlchemy engine, session factory and declarative base
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from approval_routing.config.settings import settings


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=settings.DATABASE_ECHO,
    pool_pre_ping=True
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def load_models():
    """Import every model module so relationships resolve and metadata is complete"""
    from approval_routing.models import (  # noqa: F401
        user, budget, approval_matrix, approval_profile, approver_mapping,
        approval_rule, expense_report, approval, notification, audit_log
    )
    return Base.metadata


def init_db(bind=None):
    """Create all database tables"""
    load_models().create_all(bind=bind or engine)


def get_db():
    """
    FastAPI dependency that yields a database session

    Yields:
        Session: Database session, closed after the request
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
