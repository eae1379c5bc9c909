"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, Session, create_engine  # noqa: E402

import debt_tracker.models  # noqa: E402,F401
from debt_tracker.core.security import create_access_token  # noqa: E402
from debt_tracker.database import get_session  # noqa: E402
from debt_tracker.main import app  # noqa: E402
from debt_tracker.models.user import User  # noqa: E402
from debt_tracker.schemas.debt import DebtCreate  # noqa: E402
from debt_tracker.services.debts import create_debt  # noqa: E402


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def _make_user(session: Session, email: str) -> User:
    user = User(email=email)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def owner(session) -> User:
    return _make_user(session, "owner@example.com")


@pytest.fixture
def other_user(session) -> User:
    return _make_user(session, "intruder@example.com")


@pytest.fixture
def scenario_a() -> DebtCreate:
    """50000 over 20 months at 2000, first payment one month after start."""
    return DebtCreate(
        bank_name="Banco de Bogotá",
        total_loan_amount=Decimal("50000"),
        loan_start_date=date(2030, 1, 15),
        months_to_pay=20,
        monthly_amortization=Decimal("2000"),
        due_date=date(2031, 8, 15),
        first_payment_month_offset=0,
    )


@pytest.fixture
def debt(session, owner, scenario_a):
    return create_debt(session, owner.id, scenario_a)


@pytest.fixture
def client(engine):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(owner) -> dict:
    return _headers(owner)


@pytest.fixture
def other_headers(other_user) -> dict:
    return _headers(other_user)
