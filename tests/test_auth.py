"""Tests for caller identity resolution."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

import config


def _token(claims: dict, secret: str = None) -> str:
    return jwt.encode(
        claims, secret or config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM
    )


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_bearer_token_identifies_caller(client):
    resp = client.post(
        "/api/teacher/classes",
        json={"name": "Physics 101"},
        headers=_bearer(_token({"sub": "t9", "role": "teacher"})),
    )
    assert resp.status_code == 200
    assert resp.json()["owner_id"] == "t9"


def test_bearer_token_wins_over_headers(client):
    headers = _bearer(_token({"sub": "s9", "role": "student"}))
    headers.update({"X-User-Id": "t1", "X-Role": "teacher"})
    resp = client.post("/api/teacher/classes", json={"name": "A"}, headers=headers)
    assert resp.status_code == 403


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        _token({"sub": "t1", "role": "teacher"}, secret="wrong-secret"),
        _token({"sub": "t1", "role": "teacher", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)}),
        _token({"sub": "t1"}),
        _token({"sub": "t1", "role": "superuser"}),
    ],
)
def test_bad_tokens_are_rejected(client, token):
    resp = client.get("/api/teacher/classes", headers=_bearer(token))
    assert resp.status_code == 401


def test_missing_identity_is_rejected(client):
    resp = client.get("/api/teacher/classes")
    assert resp.status_code == 401


def test_headers_ignored_when_not_trusted(client, teacher_headers, monkeypatch):
    monkeypatch.setattr(config, "TRUST_IDENTITY_HEADERS", False)
    resp = client.get("/api/teacher/classes", headers=teacher_headers)
    assert resp.status_code == 401


def test_role_header_defaults_to_student(client):
    resp = client.get("/api/student/classes", headers={"X-User-Id": "s1"})
    assert resp.status_code == 200
    assert resp.json() == {"class_ids": []}


def test_unknown_role_header_is_rejected(client):
    resp = client.get("/api/student/classes", headers={"X-User-Id": "s1", "X-Role": "root"})
    assert resp.status_code == 401
