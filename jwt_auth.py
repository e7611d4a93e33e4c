"""JWT issuing and verification.

This is the token decoder the auth middleware delegates to. It never enforces
roles; it only answers "who does this token say the caller is".
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from env_validation import jwt_settings

logger = logging.getLogger("eduadmin.auth")

_BEARER_RE = re.compile(r"Bearer\s+(.*)$", re.IGNORECASE)


def jwt_generate(
    user_id: int,
    username: str,
    role: str,
    additional_claims: Optional[Dict[str, Any]] = None,
    *,
    now: Optional[int] = None,
) -> str:
    settings = jwt_settings()
    issued_at = int(time.time()) if now is None else int(now)
    payload: Dict[str, Any] = {
        "userId": user_id,
        "username": username,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + int(settings["lifetime"]),
    }
    payload.update(additional_claims or {})
    return jwt.encode(payload, settings["secret"], algorithm=settings["algorithm"])


def jwt_verify(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode ``token``; ``None`` when it is empty, forged or expired."""
    if not token:
        logger.debug("Empty token")
        return None
    settings = jwt_settings()
    try:
        payload = jwt.decode(token, settings["secret"], algorithms=[settings["algorithm"]])
    except jwt.ExpiredSignatureError:
        logger.info("Token expired")
        return None
    except jwt.InvalidTokenError as exc:
        logger.info("JWT decode error: %s", exc)
        return None
    logger.debug("Token valid for user: %s", payload.get("username", "unknown"))
    return payload


def jwt_extract_from_header(header_value: Optional[str]) -> Optional[str]:
    if not header_value:
        return None
    match = _BEARER_RE.search(header_value.strip())
    if not match:
        return None
    return match.group(1).strip() or None


def jwt_get_current_user(request: Request) -> Optional[Dict[str, Any]]:
    token = jwt_extract_from_header(request.headers.get("authorization"))
    if not token:
        return None
    return jwt_verify(token)
