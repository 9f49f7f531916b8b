from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException

from servicedesk.core.auth import get_current_user, require_roles

SECRET = "test-secret-value-with-enough-length"


def _token(claims: dict, secret: str = SECRET) -> str:
    payload = {
        "sub": "user-1",
        "email": "asha@example.com",
        "iat": int(datetime.now(timezone.utc).timestamp()),
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def _jwt_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", SECRET)


def test_admin_role_from_app_metadata():
    user = get_current_user(f"Bearer {_token({'app_metadata': {'role': 'admin'}})}")
    assert user.role == "ADMIN"
    assert user.id == "user-1"
    assert user.display_name == "asha@example.com"


def test_missing_header_is_401():
    with pytest.raises(HTTPException) as exc_info:
        get_current_user(None)
    assert exc_info.value.status_code == 401


def test_wrong_signature_is_401():
    token = _token({"app_metadata": {"role": "ADMIN"}}, secret="another-secret-value-of-decent-length")
    with pytest.raises(HTTPException) as exc_info:
        get_current_user(f"Bearer {token}")
    assert exc_info.value.status_code == 401


def test_audience_is_enforced_when_configured(monkeypatch):
    monkeypatch.setenv("JWT_AUDIENCE", "servicedesk")
    token = _token({"app_metadata": {"role": "ADMIN"}, "aud": "someone-else"})
    with pytest.raises(HTTPException) as exc_info:
        get_current_user(f"Bearer {token}")
    assert exc_info.value.status_code == 401


def test_unknown_role_is_403():
    with pytest.raises(HTTPException) as exc_info:
        get_current_user(f"Bearer {_token({'app_metadata': {'role': 'SUPERUSER'}})}")
    assert exc_info.value.status_code == 403


def test_require_roles_rejects_other_roles():
    client = get_current_user(f"Bearer {_token({'app_metadata': {'role': 'CLIENT'}})}")
    with pytest.raises(HTTPException) as exc_info:
        require_roles("ADMIN")(client)
    assert exc_info.value.status_code == 403


def test_missing_secret_is_server_error(monkeypatch):
    monkeypatch.delenv("JWT_SECRET")
    with pytest.raises(HTTPException) as exc_info:
        get_current_user("Bearer whatever")
    assert exc_info.value.status_code == 500
