"""Pytest fixtures for testing"""

import pytest
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from lending_gateway.api.main import create_app
from lending_gateway.infrastructure.database.models import Base
from lending_gateway.infrastructure.database.repositories import PolicyRepository
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.domain.models import BorrowerProfile
from lending_gateway.domain.policy import PartnerBankPolicy, default_policy
from lending_gateway.services.decision_service import BorrowerLocks, DecisionService


# In-memory database shared across threads for the TestClient
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Strong borrower: scores 848 (EXCELLENT) under the default policy, DTI 0.20
PRIME_PROFILE = {
    "monthly_income": 20000,
    "total_debt": 4000,
    "total_credit": 50000,
    "credit_utilization": 0.1,
    "credit_age_months": 120,
    "credit_mix": 0.8,
    "inquiries": 0,
    "payment_history": 1.0,
    "recent_missed_payments": 0,
    "recent_defaults": 0,
    "active_loans": 2,
    "employment_status": "employed",
    "savings_rate": 0.2,
    "transactions_last_90_days": 20,
}

# Scores 663 (FAIR): between the personal conditional and approval thresholds
FAIR_PROFILE = {
    "monthly_income": 6000,
    "total_debt": 1500,
    "total_credit": 15000,
    "credit_utilization": 0.3,
    "credit_age_months": 60,
    "credit_mix": 0.5,
    "inquiries": 1,
    "payment_history": 0.95,
    "recent_missed_payments": 1,
    "recent_defaults": 0,
    "active_loans": 2,
    "employment_status": "employed",
    "transactions_last_90_days": 5,
}

# Four missed payments in 12 months breaches the default maximum of three
DELINQUENT_PROFILE = {
    "monthly_income": 4000,
    "total_debt": 1800,
    "total_credit": 5000,
    "credit_utilization": 0.9,
    "credit_age_months": 24,
    "credit_mix": 0.3,
    "inquiries": 4,
    "payment_history": 0.7,
    "recent_missed_payments": 4,
    "recent_defaults": 1,
    "active_loans": 5,
    "employment_status": "employed",
}


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def policy() -> PartnerBankPolicy:
    """Default partner bank policy"""
    return default_policy("CBE")


@pytest.fixture
def stored_policy(db: Session, policy: PartnerBankPolicy) -> PartnerBankPolicy:
    """Default policy saved as the bank's active version"""
    PolicyRepository(db).save_policy(policy)
    db.commit()
    return policy


@pytest.fixture
def service(db: Session, stored_policy: PartnerBankPolicy) -> DecisionService:
    """Decision service with its own lock registry"""
    return DecisionService(db, locks=BorrowerLocks())


@pytest.fixture
def client(db: Session, stored_policy: PartnerBankPolicy) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def make_profile() -> Callable[..., BorrowerProfile]:
    """Build a profile from one of the sample payloads with field overrides"""

    def _make(base: dict = PRIME_PROFILE, **overrides) -> BorrowerProfile:
        return BorrowerProfile.from_dict({**base, **overrides})

    return _make


@pytest.fixture
def prime_profile(make_profile) -> BorrowerProfile:
    return make_profile(PRIME_PROFILE)


@pytest.fixture
def fair_profile(make_profile) -> BorrowerProfile:
    return make_profile(FAIR_PROFILE)


@pytest.fixture
def delinquent_profile(make_profile) -> BorrowerProfile:
    return make_profile(DELINQUENT_PROFILE)
