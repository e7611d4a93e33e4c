"""Forward the course-factory URL namespace to the shared API routes.

``/course_factory/api/admin/<name>.php`` and the two course-factory auth paths
are rewritten in the ASGI scope and handed to the same application, so method,
body and headers reach the target untouched.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from starlette.responses import JSONResponse
from starlette.routing import Match
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("eduadmin.proxy")

ADMIN_PROXY_PREFIX = "/course_factory/api/admin/"
ADMIN_TARGET_PREFIX = "/api/admin/"
ENDPOINT_NAME_RE = re.compile(r"^[a-z_]+\.php$")

AUTH_PROXIES = {
    "/course_factory/api/auth/login.php": "/api/auth/login.php",
    "/course_factory/api/auth/validate.php": "/api/auth/validate.php",
}


class InvalidEndpoint(ValueError):
    pass


def resolve_target(path: str) -> Optional[str]:
    """Map a proxied path to its target; ``None`` when ``path`` is not proxied.

    Raises :class:`InvalidEndpoint` for admin names outside the allow-list.
    """
    if path in AUTH_PROXIES:
        return AUTH_PROXIES[path]
    if not path.startswith(ADMIN_PROXY_PREFIX):
        return None
    endpoint = path[len(ADMIN_PROXY_PREFIX):].split("?", 1)[0]
    if not ENDPOINT_NAME_RE.match(endpoint):
        raise InvalidEndpoint(endpoint)
    return ADMIN_TARGET_PREFIX + endpoint


def _route_exists(app, scope: Scope) -> bool:
    router = getattr(app, "router", None)
    for route in getattr(router, "routes", ()):
        match, _ = route.matches(scope)
        # PARTIAL means the path exists under another method; let it answer 405.
        if match != Match.NONE:
            return True
    return False


class ProxyMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        try:
            target = resolve_target(path)
        except InvalidEndpoint:
            logger.warning("Rejected proxy request for invalid endpoint: %s", path)
            response = JSONResponse({"error": "Invalid endpoint"}, status_code=400)
            await response(scope, receive, send)
            return

        if target is None:
            await self.app(scope, receive, send)
            return

        forwarded = dict(scope)
        forwarded["path"] = target
        forwarded["raw_path"] = target.encode("utf-8")

        if not _route_exists(scope.get("app"), forwarded):
            name = target.rsplit("/", 1)[-1]
            logger.info("Proxy target missing: %s", target)
            response = JSONResponse({"error": f"Endpoint not found: {name}"}, status_code=404)
            await response(scope, receive, send)
            return

        logger.debug("Forwarding %s -> %s", path, target)
        await self.app(forwarded, receive, send)
