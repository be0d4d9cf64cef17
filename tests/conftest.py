import base64
import sys
import uuid
from datetime import UTC, datetime
from types import ModuleType

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from standardwebhooks import Webhook

# Create a test engine BEFORE any app imports
_test_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Create a mock for the app.db module that uses our test engine
class TestBase(DeclarativeBase):
    pass


_TestSessionLocal = sessionmaker(bind=_test_engine, autoflush=False, autocommit=False)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


mock_db_module = ModuleType("app.db")
mock_db_module.Base = TestBase
mock_db_module.TimestampMixin = TimestampMixin
mock_db_module.SessionLocal = _TestSessionLocal
mock_db_module.get_engine = lambda: _test_engine

# Also mock app.config to prevent .env loading
mock_config_module = ModuleType("app.config")

WEBHOOK_SECRET = "whsec-test-secret"


class MockSettings:
    database_url = "sqlite+pysqlite:///:memory:"
    db_pool_size = 5
    db_max_overflow = 10
    db_pool_timeout = 30
    db_pool_recycle = 1800
    polar_access_token = "polar_at_test"
    polar_organization_id = "org_1234567890abcdef"
    polar_webhook_secret = WEBHOOK_SECRET
    polar_api_base = "https://polar.test/v1"
    polar_page_size = 50
    polar_timeout_seconds = 5.0
    polar_page_delay_seconds = 0.0
    polar_reject_stale_events = False
    polar_email_match_case_insensitive = False
    frontend_url = "https://app.example.com"
    cors_origins = ""


mock_config_module.settings = MockSettings()
mock_config_module.Settings = MockSettings
mock_config_module.validate_settings = lambda s: []

# Insert mocks before any app imports
sys.modules["app.config"] = mock_config_module
sys.modules["app.db"] = mock_db_module

# Now import the models - they'll use our mocked db module
from app.models.admin import Admin, AdminRole  # noqa: E402
from app.models.audit import AuditLog  # noqa: E402,F401
from app.models.billing import Product, Subscription, WebhookEvent  # noqa: E402,F401
from app.models.user import User  # noqa: E402
from app.services.permissions import default_permissions  # noqa: E402

TestBase.metadata.create_all(_test_engine)

Base = TestBase


@pytest.fixture(scope="session")
def engine():
    return _test_engine


@pytest.fixture()
def db_session(engine):
    """Database session on the shared StaticPool connection.

    Every table is emptied afterwards so counts never leak between tests.
    """
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = Session()
    try:
        yield session
    finally:
        session.rollback()
        for table in reversed(TestBase.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.close()


@pytest.fixture()
def settings():
    return mock_config_module.settings


def _unique_email() -> str:
    return f"test-{uuid.uuid4().hex}@example.com"


def _create_admin(db_session, role: AdminRole, permissions=None) -> Admin:
    admin = Admin(
        user_id=f"admin_{uuid.uuid4().hex[:12]}",
        role=role,
        permissions=(
            default_permissions(role.value) if permissions is None else permissions
        ),
        is_active=True,
    )
    db_session.add(admin)
    db_session.commit()
    db_session.refresh(admin)
    return admin


@pytest.fixture()
def super_admin(db_session):
    return _create_admin(db_session, AdminRole.super_admin, permissions=[])


@pytest.fixture()
def support_admin(db_session):
    """Read-only admin: may view subscriptions and products, nothing else."""
    return _create_admin(db_session, AdminRole.support)


@pytest.fixture()
def make_admin(db_session):
    def _make(role: AdminRole = AdminRole.admin, permissions=None) -> Admin:
        return _create_admin(db_session, role, permissions)

    return _make


@pytest.fixture()
def admin_headers(super_admin):
    return {"X-Admin-Id": super_admin.user_id}


@pytest.fixture()
def support_headers(support_admin):
    return {"X-Admin-Id": support_admin.user_id}


@pytest.fixture()
def make_user(db_session):
    def _make(email: str | None = None, name: str = "Test User") -> User:
        user = User(
            token_identifier=f"user_{uuid.uuid4().hex[:12]}",
            email=email if email is not None else _unique_email(),
            name=name,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def user(make_user):
    return make_user(email="jane@example.com", name="Jane Doe")


@pytest.fixture()
def make_subscription(db_session):
    def _make(**fields) -> Subscription:
        fields.setdefault("polar_id", f"sub_{uuid.uuid4().hex[:12]}")
        fields.setdefault("status", "active")
        fields.setdefault("amount", 1000)
        fields.setdefault("currency", "usd")
        fields.setdefault("interval", "month")
        subscription = Subscription(**fields)
        db_session.add(subscription)
        db_session.commit()
        db_session.refresh(subscription)
        return subscription

    return _make


@pytest.fixture()
def polar_subscription():
    """Factory for provider subscription payloads as Polar sends them."""

    def _make(polar_id: str = "sub_123", **overrides) -> dict:
        payload = {
            "id": polar_id,
            "created_at": "2026-01-01T00:00:00Z",
            "modified_at": "2026-01-02T00:00:00Z",
            "amount": 1000,
            "currency": "usd",
            "recurring_interval": "month",
            "status": "active",
            "current_period_start": "2026-01-01T00:00:00Z",
            "current_period_end": "2026-02-01T00:00:00Z",
            "cancel_at_period_end": False,
            "started_at": "2026-01-01T00:00:00Z",
            "ended_at": None,
            "canceled_at": None,
            "customer_id": "cus_123",
            "product_id": "prod_123",
            "price_id": "price_123",
            "metadata": {},
            "custom_field_data": {},
            "customer": {"id": "cus_123", "email": "jane@example.com"},
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture()
def sign_webhook():
    """Return headers carrying a valid Standard Webhooks signature for ``body``."""
    webhook = Webhook(base64.b64encode(WEBHOOK_SECRET.encode()).decode())

    def _sign(
        body: str, msg_id: str | None = None, timestamp: datetime | None = None
    ) -> dict[str, str]:
        msg_id = msg_id or f"msg_{uuid.uuid4().hex}"
        timestamp = timestamp or datetime.now(UTC)
        return {
            "webhook-id": msg_id,
            "webhook-timestamp": str(int(timestamp.timestamp())),
            "webhook-signature": webhook.sign(msg_id, timestamp, body),
            "content-type": "application/json",
        }

    return _sign


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session):
    """Create a test client with database dependency override."""
    from app.api.deps import get_db as api_get_db
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[api_get_db] = override_get_db

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
