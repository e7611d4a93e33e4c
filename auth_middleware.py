"""Authentication and role guards shared by every endpoint.

Guards either hand back the caller's claims or stop the request. How the
request is stopped is pluggable through an :class:`ErrorHandler`; by default the
matching :class:`errors.ApiError` is raised and rendered as
``{"success": false, "error": ...}``.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Protocol, Union

from fastapi import Depends, Request

from errors import AuthenticationRequired, InsufficientPermissions
from jwt_auth import jwt_get_current_user
from schemas import UserClaims

Roles = Union[str, Iterable[str]]

AUTHENTICATION_REQUIRED = "Authentication required"
INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


class ErrorHandler(Protocol):
    def handle(self, message: str, status: int) -> None:
        ...


class JSONErrorHandler:
    """Default strategy: raise the API error matching ``status``."""

    def handle(self, message: str, status: int) -> None:
        if status == 401:
            raise AuthenticationRequired(message)
        raise InsufficientPermissions(message)


class CallbackErrorHandler:
    """Adapts a plain ``callback(message, status)`` to :class:`ErrorHandler`."""

    def __init__(self, callback: Callable[[str, int], None]):
        self._callback = callback

    def handle(self, message: str, status: int) -> None:
        self._callback(message, status)


_DEFAULT_HANDLER = JSONErrorHandler()


def _normalize_roles(roles: Roles) -> frozenset[str]:
    if isinstance(roles, str):
        return frozenset({roles})
    return frozenset(roles)


def has_role(claims: Optional[UserClaims], roles: Roles) -> bool:
    if claims is None:
        return False
    return (claims.role or "") in _normalize_roles(roles)


def is_authenticated(request: Request) -> bool:
    return bool(jwt_get_current_user(request))


def require_valid_token(request: Request, error_handler: Optional[ErrorHandler] = None) -> UserClaims:
    payload = jwt_get_current_user(request)
    if not payload:
        if error_handler is not None:
            error_handler.handle(AUTHENTICATION_REQUIRED, 401)
        # A custom handler that returns still must not let the request through.
        raise AuthenticationRequired(AUTHENTICATION_REQUIRED)
    return UserClaims.from_payload(payload)


def require_role(
    claims: UserClaims,
    allowed_roles: Roles,
    error_handler: Optional[ErrorHandler] = None,
) -> bool:
    if not has_role(claims, allowed_roles):
        (error_handler or _DEFAULT_HANDLER).handle(INSUFFICIENT_PERMISSIONS, 403)
        raise InsufficientPermissions(INSUFFICIENT_PERMISSIONS)
    return True


def current_claims(request: Request) -> UserClaims:
    """FastAPI dependency: claims of the caller or 401."""
    return require_valid_token(request)


def require_roles(*roles: str) -> Callable[..., UserClaims]:
    """Build a dependency that admits only callers holding one of ``roles``."""

    def _dependency(claims: UserClaims = Depends(current_claims)) -> UserClaims:
        require_role(claims, roles)
        return claims

    return _dependency
