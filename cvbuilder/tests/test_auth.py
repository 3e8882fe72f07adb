import time

import jwt
import pytest

from cvbuilder.core.auth import verify_clerk_jwt
from cvbuilder.core.config import settings
from cvbuilder.core.errors import UnauthorizedError
from cvbuilder.features.users.service import get_user
from cvbuilder.models.plan import PlanTier

SECRET = "test-clerk-secret-with-enough-length-for-hs256"


def _token(sub="user_jwt", exp_offset=300):
    return jwt.encode({"sub": sub, "exp": int(time.time()) + exp_offset}, SECRET, algorithm="HS256")


@pytest.fixture
def clerk_secret(monkeypatch):
    monkeypatch.setattr(settings, "CLERK_SECRET_KEY", SECRET)


def test_no_secret_skips_jwt_validation():
    assert verify_clerk_jwt("anything") is None


def test_valid_token_yields_subject(clerk_secret):
    assert verify_clerk_jwt(_token()) == "user_jwt"


def test_expired_token_is_rejected(clerk_secret):
    with pytest.raises(UnauthorizedError, match="Token expired"):
        verify_clerk_jwt(_token(exp_offset=-60))


def test_tampered_token_is_rejected(clerk_secret):
    with pytest.raises(UnauthorizedError):
        verify_clerk_jwt(_token() + "x")


def test_bearer_token_authenticates_and_upserts_user(client, clerk_secret):
    resp = client.get("/api/payments/history", headers={"Authorization": f"Bearer {_token('user_jwt')}"})
    assert resp.status_code == 200

    user = get_user("user_jwt")
    assert user is not None
    assert user.current_plan == PlanTier.BASIC


def test_invalid_bearer_does_not_fall_back_to_header(client, clerk_secret):
    resp = client.get(
        "/api/payments/history",
        headers={"Authorization": "Bearer not-a-jwt", "X-User-Id": "u1"},
    )
    assert resp.status_code == 401


def test_x_user_id_header_fallback(client):
    resp = client.get("/api/payments/history", headers={"X-User-Id": "header-user"})
    assert resp.status_code == 200
    assert get_user("header-user") is not None


def test_missing_credentials_is_401(client):
    resp = client.get("/api/payments/history")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def test_x_user_id_header_is_ignored_when_clerk_is_configured(client, clerk_secret):
    resp = client.get("/api/payments/history", headers={"X-User-Id": "someone-else"})
    assert resp.status_code == 401
    assert get_user("someone-else") is None
