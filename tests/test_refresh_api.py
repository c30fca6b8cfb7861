from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy import select

from helpers import bearer, login
from tenant_auth.core.config import settings
from tenant_auth.core.tokens import decode_access, fingerprint, utcnow
from tenant_auth.main import api
from tenant_auth.models.device_session import DeviceSession


def _row(db, token):
    db.expire_all()
    return db.scalar(select(DeviceSession).where(DeviceSession.token_hash == fingerprint(token)))


def test_refresh_rotates_on_the_same_session(client, make_user, db):
    make_user()
    first = login(client).json()
    sid = decode_access(first["accessToken"])["sid"]

    r = client.post("/api/auth/refresh")
    assert r.status_code == 200
    second = r.json()
    assert second["refreshToken"] != first["refreshToken"]
    assert second["user"]["email"] == "ana@example.com"
    assert decode_access(second["accessToken"])["sid"] == sid
    assert client.cookies.get(settings.REFRESH_COOKIE_NAME) == second["refreshToken"]

    assert _row(db, first["refreshToken"]) is None
    assert _row(db, second["refreshToken"]).id == sid


def test_old_refresh_token_is_dead_after_rotation(client, make_user):
    make_user()
    first = login(client).json()
    assert client.post("/api/auth/refresh").status_code == 200

    client.cookies.clear()
    r = client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 401
    assert r.json()["code"] == "SessionInvalid"


def test_body_token_is_accepted_without_cookie(client, make_user):
    make_user()
    first = login(client).json()
    client.cookies.clear()
    r = client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 200


def test_missing_or_malformed_token(client):
    r = client.post("/api/auth/refresh")
    assert r.status_code == 401
    assert r.json()["code"] == "SessionMalformed"

    r = client.post("/api/auth/refresh", json={"refreshToken": "not a token"})
    assert r.json()["code"] == "SessionMalformed"


def test_expired_session(client, make_user, db):
    make_user()
    token = login(client).json()["refreshToken"]
    row = _row(db, token)
    row.expires_at = utcnow() - timedelta(seconds=5)
    db.commit()

    r = client.post("/api/auth/refresh")
    assert r.status_code == 401
    assert r.json()["code"] == "SessionExpired"
    assert settings.REFRESH_COOKIE_NAME not in client.cookies


def test_inactive_owner_loses_session(client, make_user, db):
    user = make_user()
    token = login(client).json()["refreshToken"]
    user.is_active = False
    db.commit()

    r = client.post("/api/auth/refresh")
    assert r.json()["code"] == "SessionInvalid"
    assert _row(db, token).is_active is False


def test_remember_me_survives_rotation(client, make_user, db):
    make_user()
    login(client, rememberMe=True)
    token = client.post("/api/auth/refresh").json()["refreshToken"]
    row = _row(db, token)
    assert row.remember_me is True
    remaining = row.expires_at.replace(tzinfo=None) - utcnow().replace(tzinfo=None)
    assert remaining.days == settings.REMEMBER_ME_EXPIRE_DAYS - 1


def test_logout_revokes_and_is_idempotent(client, make_user, db):
    make_user()
    token = login(client).json()["refreshToken"]

    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert settings.REFRESH_COOKIE_NAME not in client.cookies
    assert _row(db, token).is_active is False

    assert client.post("/api/auth/logout").status_code == 200
    r = client.post("/api/auth/refresh", json={"refreshToken": token})
    assert r.json()["code"] == "SessionInvalid"


def test_logout_by_bearer_session_id(client, make_user, db):
    make_user()
    data = login(client).json()
    client.cookies.clear()
    assert client.post("/api/auth/logout", headers=bearer(data["accessToken"])).status_code == 200
    assert _row(db, data["refreshToken"]).is_active is False


def test_logout_all(client, make_user):
    make_user()
    data = login(client).json()
    with TestClient(api) as tablet:
        login(tablet)
        r = client.post("/api/auth/logout-all", headers=bearer(data["accessToken"]))
        assert r.json()["revokedSessions"] == 2
        assert tablet.post("/api/auth/refresh").json()["code"] == "SessionInvalid"
    assert client.post("/api/auth/refresh").status_code == 401
