import threading
from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import select, text

from alumni_portal.core.config import settings
from alumni_portal.core.security import (
    JWTError,
    create_access_token,
    hash_password,
    user_id_from_token,
    verify_password,
)
from alumni_portal.db.session import build_engine, session_scope
from alumni_portal.models.user import User


def test_password_hash_round_trip_beyond_bcrypt_limit():
    long_password = "p" * 100
    hashed = hash_password(long_password)
    assert verify_password(long_password, hashed)
    # differs only after byte 72, which plain bcrypt would ignore
    assert not verify_password("p" * 99 + "q", hashed)


def test_access_token_resolves_to_user_id():
    assert user_id_from_token(create_access_token(subject="42")) == 42


def test_expired_token_rejected():
    token = create_access_token(subject="42", ttl=timedelta(seconds=-5))
    with pytest.raises(JWTError):
        user_id_from_token(token)


@pytest.mark.parametrize("claims", [
    {"sub": "42"},
    {"sub": "42", "typ": "refresh"},
    {"sub": "asha@example.com", "typ": "access"},
    {"typ": "access"},
])
def test_tokens_without_access_claims_rejected(claims):
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_alg)
    with pytest.raises(JWTError):
        user_id_from_token(token)


def test_missing_bearer_header_is_401(client):
    r = client.get("/auth/me")
    assert r.status_code == 401
    assert r.headers["www-authenticate"] == "Bearer"


def test_token_for_deleted_account_is_401(client):
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {create_access_token(subject='9999')}"})
    assert r.status_code == 401


def test_sqlite_engine_allows_cross_thread_use(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'threads.db'}")
    try:
        results = []
        with engine.connect() as conn:
            worker = threading.Thread(target=lambda: results.append(conn.execute(text("select 1")).scalar()))
            worker.start()
            worker.join()
        assert results == [1]
    finally:
        engine.dispose()


def test_session_scope_rolls_back_on_error(monkeypatch, session_factory, db):
    monkeypatch.setattr("alumni_portal.db.session.SessionLocal", session_factory)

    with pytest.raises(RuntimeError):
        with session_scope() as session:
            session.add(User(email="rolled@example.com", password_hash="x", membership_status="none"))
            session.flush()
            raise RuntimeError("boom")

    assert db.scalar(select(User).where(User.email == "rolled@example.com")) is None
