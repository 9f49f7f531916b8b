import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

from servicedesk.core.config import get_settings

logger = logging.getLogger(__name__)

ALLOWED_ROLES = {"CLIENT", "STAFF", "ADMIN"}


@dataclass
class CurrentUser:
    id: str
    role: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Admin"


def _extract_role(payload: dict) -> Optional[str]:
    # Role is read from server-managed claims only; top-level "role" is a fallback for self-issued tokens.
    app_meta = payload.get("app_metadata") or {}
    raw = app_meta.get("role", payload.get("role"))
    if raw is None:
        return None
    role = str(raw).strip().upper()
    if role not in ALLOWED_ROLES:
        return None
    return role


def _decode_options(settings):
    """Build shared audience kwargs + options dict."""
    audience = (settings.jwt_audience or "").strip()
    decode_kwargs = {}
    options = {}
    if audience:
        decode_kwargs["audience"] = audience
        options["verify_aud"] = True
    else:
        options["verify_aud"] = False
    return decode_kwargs, options


def decode_token(token: str) -> Optional[dict]:
    settings = get_settings()
    decode_kwargs, options = _decode_options(settings)
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            options=options,
            **decode_kwargs,
        )
    except jwt.InvalidTokenError as exc:
        logger.debug("JWT verification failed: %s", exc)
        return None


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Not authorized to access this route")

    token = authorization.split(" ", 1)[1].strip()
    settings = get_settings()
    if not settings.jwt_secret:
        raise HTTPException(500, "JWT_SECRET is not configured")

    payload = decode_token(token)
    if payload is None:
        raise HTTPException(401, "Invalid token")

    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise HTTPException(401, "Invalid token")

    role = _extract_role(payload)
    if not role:
        raise HTTPException(403, "Missing role")

    return CurrentUser(id=str(user_id), role=role, email=payload.get("email"), name=payload.get("name"))


def require_roles(*roles: str):
    def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(403, "Forbidden")
        return user

    return _dependency
