import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from alumni_portal.core.config import settings
from alumni_portal.core.security import hash_password
from alumni_portal.db.base import Base
from alumni_portal.db.session import get_db
from alumni_portal.integrations.cashfree_client import get_gateway
from alumni_portal.main import create_app
from alumni_portal.models import membership_record, order  # noqa: F401
from alumni_portal.models.user import User

from fakes import WEBHOOK_SECRET, FakeGateway, auth_headers


@pytest.fixture(autouse=True)
def cashfree_settings(monkeypatch):
    monkeypatch.setattr(settings, "cashfree_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "cashfree_notify_url", "https://alumni.example.com/cashfree/webhook")
    monkeypatch.setattr(settings, "app_base_url", "https://alumni.example.com")


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(session_factory, gateway):
    app = create_app()

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(email="asha@example.com", phone="9876543210", name="Asha Rao", password="correct-horse"):
        user = User(
            email=email,
            password_hash=hash_password(password),
            display_name=name,
            phone=phone,
            membership_status="none",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def headers(user):
    return auth_headers(user)
