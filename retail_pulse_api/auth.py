"""
auth.py – Bearer token creation, verification and FastAPI dependencies.

Tokens are HS256 JWTs signed with RETAIL_PULSE_SECRET and carry the
caller's id (``sub``), ``role`` and, for supplier accounts, ``supplier_id``.
Issuing tokens to end users (login, sessions) happens outside this service.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from retail_pulse.constants import ROLE_SUPPLIER, ROLES
from retail_pulse.service import Actor

from .db import get_settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def create_access_token(
    user_id: str,
    role: str,
    supplier_id: int | None = None,
    *,
    secret: str | None = None,
    expires_in: int | None = None,
) -> str:
    """Create a signed access token."""
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    if secret is None:
        secret = get_settings().secret_key
    if expires_in is None:
        expires_in = get_settings().token_ttl_seconds
    now = datetime.now(timezone.utc)
    to_encode: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    if supplier_id is not None:
        to_encode["supplier_id"] = supplier_id
    return jwt.encode(to_encode, secret, algorithm=JWT_ALGORITHM)


def verify_token(token: str, *, secret: str | None = None) -> dict | None:
    """Verify and decode a token. Returns the payload dict or None if invalid or expired."""
    try:
        payload = jwt.decode(
            token,
            secret if secret is not None else get_settings().secret_key,
            algorithms=[JWT_ALGORITHM],
        )
    except JWTError as exc:
        logger.debug("Token verification failed: %s", exc)
        return None
    if payload.get("role") not in ROLES or not payload.get("sub"):
        return None
    return payload


def actor_from_payload(payload: dict) -> Actor:
    supplier_id = payload.get("supplier_id")
    return Actor(
        id=str(payload["sub"]),
        role=payload["role"],
        supplier_id=int(supplier_id) if supplier_id is not None else None,
    )


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_user(request: Request) -> Actor:
    """Return the authenticated caller. Raises 401 if no valid token is provided."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_from_payload(payload)


def supplier_scope(user: Actor, requested: int | None = None) -> int | None:
    """
    Supplier filter for an analytics query.

    Supplier accounts always see only their own supplier, whatever they ask for.
    """
    if user.role == ROLE_SUPPLIER:
        if user.supplier_id is None:
            raise PermissionError("Supplier account has no supplier assigned")
        return user.supplier_id
    return requested
