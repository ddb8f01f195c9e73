from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, Request

from creator_ledger.core.settings import S


def _decode_verified(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, S.jwt_secret, algorithms=[S.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc


def _decode_jwt_sub(token: str) -> Optional[str]:
    if token.count(".") != 2:
        return None
    _, payload, _ = token.split(".", 2)
    if not payload:
        return None
    padding = "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload + padding)
        data = json.loads(decoded.decode("utf-8"))
    except (ValueError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    sub = data.get("sub")
    return sub if isinstance(sub, str) and sub.strip() else None


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def get_authenticated_user_id(request: Request) -> str:
    """
    Resolve the caller's user id.

    With JWT_SECRET set the bearer token must be a valid signed JWT. Without it
    (local development) the X-User-Sub header, an unverified JWT ``sub`` or the
    raw bearer token is accepted.
    """
    if S.jwt_secret:
        token = extract_bearer_token(request.headers.get("authorization"))
        payload = _decode_verified(token)
        user_id = payload.get("sub") or payload.get("user_id")
        if not user_id:
            raise HTTPException(401, "Token missing subject")
        return str(user_id)

    fallback_user = request.headers.get("x-user-sub")
    if fallback_user:
        return fallback_user

    token = extract_bearer_token(request.headers.get("authorization", ""))
    return _decode_jwt_sub(token) or token


async def get_user_email(request: Request) -> Optional[str]:
    """Email claim of a verified token, when there is one."""
    if not S.jwt_secret:
        return None
    auth = request.headers.get("authorization")
    if not auth:
        return None
    payload = _decode_verified(extract_bearer_token(auth))
    email = payload.get("email")
    return str(email) if email else None
