"""
Pytest configuration and fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-the-time-off-service")
os.environ.setdefault("MAIL_SUPPRESS_SEND", "true")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.engine import Engine

from app.main import app
from app.db.base import Base
from app.core.deps import get_db
from app.core.security import hash_password
from app.services import notification_service
from app.utils.datetime_utils import today

# Import all models to ensure they're registered with Base.metadata
from app.models import (
    User,
    Role,
    Employee,
    LeaveType,
    LeaveBalance,
    LeaveRequest,
    LeaveApprovalEntry,
    Notification,
    RefreshToken,
)  # noqa


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def dispatch_sessions(monkeypatch):
    """Background notification dispatchers open sessions on the test database"""
    monkeypatch.setattr(notification_service, "SessionLocal", TestingSessionLocal)


@pytest.fixture(scope="function")
def client(db):
    """Test client fixture with database override"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db: Session, email: str, role: Role = Role.EMPLOYEE, approval_level=None, department=None) -> User:
    user = User(
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        role=role.value,
        approval_level=approval_level,
        department=department,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _make_employee(db: Session, user, name: str, department: str = "Engineering", manager=None) -> Employee:
    employee = Employee(
        user_id=user.id if user else None,
        name=name,
        email=user.email if user else f"{name.lower().replace(' ', '.')}@example.com",
        department=department,
        manager_id=manager.id if manager else None,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


def _next_work_week() -> tuple:
    current = today()
    monday = current + timedelta(days=7 - current.weekday())
    return monday, monday + timedelta(days=4)


@pytest.fixture
def make_user(db: Session):
    """Factory: make_user(email, role, approval_level=None, department=None)"""
    def _factory(email, role=Role.EMPLOYEE, approval_level=None, department=None):
        return _make_user(db, email, role, approval_level=approval_level, department=department)
    return _factory


@pytest.fixture
def make_employee(db: Session):
    """Factory: make_employee(user, name, department="Engineering", manager=None)"""
    def _factory(user, name, department="Engineering", manager=None):
        return _make_employee(db, user, name, department=department, manager=manager)
    return _factory


@pytest.fixture
def auth_headers(client):
    """Log in through the API and return a bearer header"""
    def _login(email, password=DEFAULT_PASSWORD):
        response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login


@pytest.fixture
def work_week():
    """Monday and Friday of next week"""
    return _next_work_week()


@pytest.fixture
def admin_user(db: Session):
    user = _make_user(db, "admin@example.com", Role.ADMIN, department="Administration")
    _make_employee(db, user, "Ada Admin", department="Administration")
    return user


@pytest.fixture
def manager_user(db: Session):
    return _make_user(db, "manager@example.com", Role.APPROVER, department="Engineering")


@pytest.fixture
def manager(db: Session, manager_user):
    return _make_employee(db, manager_user, "Mona Manager")


@pytest.fixture
def employee_user(db: Session):
    return _make_user(db, "employee@example.com", Role.EMPLOYEE, department="Engineering")


@pytest.fixture
def employee(db: Session, employee_user, manager):
    return _make_employee(db, employee_user, "Eve Employee", manager=manager)


@pytest.fixture
def outsider_user(db: Session):
    """Approver in another department with no relationship to the employee"""
    return _make_user(db, "outsider@example.com", Role.APPROVER, department="Finance")


@pytest.fixture
def outsider(db: Session, outsider_user):
    return _make_employee(db, outsider_user, "Otto Outsider", department="Finance")


@pytest.fixture
def annual_leave(db: Session):
    """Dated, balance-requiring leave type that may be booked ahead"""
    leave_type = LeaveType(
        name="Annual Leave",
        default_days=0,
        requires_dates=True,
        requires_balance=True,
        allow_future_applications=True,
    )
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    return leave_type


@pytest.fixture
def sick_leave(db: Session):
    """Reported leave type (no dates, no balance)"""
    leave_type = LeaveType(
        name="Sick Leave",
        default_days=0,
        requires_dates=False,
        requires_balance=False,
        is_open_ended_allowed=True,
        max_retroactive_days=2,
    )
    db.add(leave_type)
    db.commit()
    db.refresh(leave_type)
    return leave_type


@pytest.fixture
def annual_balance(db: Session, employee, annual_leave):
    """allocated=10 for the year of next week's Monday"""
    monday, _ = _next_work_week()
    balance = LeaveBalance(
        employee_id=employee.id,
        leave_type_id=annual_leave.id,
        year=monday.year,
        allocated=10,
        used=0,
        pending=0,
        carry_over=0,
    )
    db.add(balance)
    db.commit()
    db.refresh(balance)
    return balance
