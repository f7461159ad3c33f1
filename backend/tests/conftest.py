import pytest
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from main import app
from database import Base, get_db, configure_sqlite
from models import User
from auth import create_access_token
from dependencies import get_ocr_service, get_payment_gateway, get_settlement_verifier
from utils.settlement import SettlementVerifier

# Import rate limiters to override them
from utils.rate_limiter import ocr_rate_limiter, payment_rate_limiter

TEST_GATEWAY_SECRET = "test-gateway-secret"

# Setup in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = configure_sqlite(create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_user(db_session, user_id, full_name, email=None, phone_number=None):
    user = User(id=user_id, full_name=full_name, email=email, phone_number=phone_number)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def headers_for(user):
    access_token = create_access_token(data={"sub": user.id, "name": user.full_name})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def client(db_session):
    """Create a FastAPI TestClient with overridden database dependency."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)

@pytest.fixture
def test_user(db_session):
    """Create a test user and return the user object."""
    return make_user(db_session, "user-alice", "Alice", email="alice@example.com", phone_number="9876500001")

@pytest.fixture
def other_user(db_session):
    return make_user(db_session, "user-bob", "Bob", email="bob@example.com", phone_number="9876500002")

@pytest.fixture
def third_user(db_session):
    return make_user(db_session, "user-carol", "Carol", email="carol@example.com")

@pytest.fixture
def auth_headers(test_user):
    """Return authorization headers for the test user."""
    return headers_for(test_user)

@pytest.fixture
def other_headers(other_user):
    return headers_for(other_user)

@pytest.fixture
def verifier():
    return SettlementVerifier(secret=TEST_GATEWAY_SECRET)

@pytest.fixture
def mock_gateway():
    gateway = Mock()
    gateway.key_id = "rzp_test_key"
    gateway.create_order.side_effect = lambda amount, receipt, notes=None: {
        "id": f"order_{receipt}", "amount": amount.amount, "currency": amount.currency
    }
    return gateway

@pytest.fixture
def mock_ocr_service():
    return Mock()

@pytest.fixture(autouse=True)
def override_collaborators(verifier, mock_gateway, mock_ocr_service):
    """Swap the gateway, OCR service and settlement secret for test doubles."""
    app.dependency_overrides[get_settlement_verifier] = lambda: verifier
    app.dependency_overrides[get_payment_gateway] = lambda: mock_gateway
    app.dependency_overrides[get_ocr_service] = lambda: mock_ocr_service
    yield
    for dependency in (get_settlement_verifier, get_payment_gateway, get_ocr_service):
        app.dependency_overrides.pop(dependency, None)

@pytest.fixture(autouse=True)
def disable_rate_limits():
    """Disable all rate limits during testing using dependency overrides."""
    async def mock_rate_limit():
        return True

    overrides = {
        ocr_rate_limiter: mock_rate_limit,
        payment_rate_limiter: mock_rate_limit,
    }

    for limiter, mock in overrides.items():
        app.dependency_overrides[limiter] = mock

    yield

    for limiter in overrides.keys():
        app.dependency_overrides.pop(limiter, None)
