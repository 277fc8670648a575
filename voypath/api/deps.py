"""Request-scoped dependencies: caller identity and the service context."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header

from voypath.application.context import AppContext, make_app_context
from voypath.config.settings import allow_unauthenticated_api
from voypath.domain.exceptions import AuthenticationRequired, ValidationFailed
from voypath.domain.models import User
from voypath.security.key_manager import get_key_manager
from voypath.services.access import now_iso

_MAX_USER_ID_LEN = 128


def get_app_context() -> AppContext:
    return make_app_context()


def _check_bearer(authorization: Optional[str]) -> None:
    """API_BEARER_TOKEN, when configured, guards every trip route."""
    expected = get_key_manager().get_api_bearer_token()
    if not expected or allow_unauthenticated_api():
        return
    scheme, _, supplied = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(supplied.strip().encode(), expected.encode()):
        raise AuthenticationRequired("Invalid or missing bearer token")


def get_current_user_id(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
    ctx: AppContext = Depends(get_app_context),
) -> str:
    _check_bearer(authorization)
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationRequired("X-User-Id header is required")
    if len(user_id) > _MAX_USER_ID_LEN:
        raise ValidationFailed("X-User-Id is too long")
    ctx.repo.upsert_user(
        User(id=user_id, name=(x_user_name or "").strip(), created_at=now_iso())
    )
    return user_id
