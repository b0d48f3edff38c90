import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers the tables on Base
from app import create_app
from config import Settings
from database import Base, get_db
from models.user import User
from services.email_service import EmailDeliveryError, EmailNotConfigured
from utils.clock import utcnow

# One in-memory database shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeEmailService:
    def __init__(self, configured=True, error=None):
        self.configured = configured
        self.error = error
        self.sent = []

    def send_verification_code(self, to_email, code):
        if not self.configured:
            raise EmailNotConfigured("SMTP credentials are not configured")
        if self.error:
            raise EmailDeliveryError(self.error)
        self.sent.append((to_email, code))

    def last_code_for(self, email):
        codes = [code for to, code in self.sent if to == email]
        return codes[-1] if codes else None


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", environment="test", session_secret="test-secret")


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def make_client(settings, email_service):
    apps = []

    def _make(settings_override=None, mailer=None, raise_server_exceptions=True):
        app = create_app(settings_override or settings)
        app.state.email_service = mailer or email_service

        def override_get_db():
            session = TestingSessionLocal()
            try:
                yield session
            finally:
                session.close()

        app.dependency_overrides[get_db] = override_get_db
        apps.append(app)
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    yield _make
    for app in apps:
        app.dependency_overrides = {}


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def make_user(db):
    def _make(email="a@nextest.com.br", name="Ana Souza", department="Suporte", is_active=True):
        user = User(name=name, email=email, department=department, is_active=is_active, created_at=utcnow())
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make
