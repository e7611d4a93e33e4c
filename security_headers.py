"""Response headers applied by the app's HTTP middleware."""

from typing import Dict

from env_validation import get_allowed_origins

PUBLIC_PATH_PREFIX = "/api/public/"

BASE_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}

PUBLIC_CACHE_CONTROL = "public, max-age=300"


def cors_headers(origin: str | None) -> Dict[str, str]:
    allowed = get_allowed_origins()
    if "*" in allowed:
        allow_origin = "*"
    elif origin and origin in allowed:
        allow_origin = origin
    else:
        return {}
    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }
    if allow_origin != "*":
        headers["Vary"] = "Origin"
    return headers


def headers_for(path: str, origin: str | None = None) -> Dict[str, str]:
    headers = dict(BASE_HEADERS)
    if path.startswith(PUBLIC_PATH_PREFIX):
        headers.update(cors_headers(origin))
        headers["Cache-Control"] = PUBLIC_CACHE_CONTROL
    return headers
