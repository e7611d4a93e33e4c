"""Privacy boundary for analytics responses.

Analytics payloads are aggregates. Before one is serialised it is scanned for
PII field names, for nesting deep enough to hide per-user data, and for lists
that look like individual records. Any hit blocks the response.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping

from fastapi.responses import JSONResponse

from env_validation import is_production
from errors import AnalyticsPrivacyViolation

LOGGER = logging.getLogger("eduadmin.privacy")

MAX_DEPTH = 3

FORBIDDEN_KEYS = frozenset(
    {
        "user_id",
        "email",
        "username",
        "name",
        "first_name",
        "last_name",
        "full_name",
        "phone",
        "phone_number",
        "address",
        "street",
        "city",
        "zip",
        "postal_code",
        "ip",
        "ip_address",
        "session_id",
        "session_token",
        "auth_token",
        "password",
        "ssn",
        "date_of_birth",
        "dob",
        "birthdate",
    }
)

RECORD_LIKE_FIELDS = ("id", "created_at", "updated_at", "status", "role")


def _items(data: Any):
    if isinstance(data, Mapping):
        return data.items()
    if isinstance(data, (list, tuple)):
        return enumerate(data)
    return ()


def scan_for_pii(data: Any, key_path: str = "", depth: int = 0) -> List[str]:
    if depth > MAX_DEPTH:
        return [f"Excessive nesting depth ({depth} levels) at path: {key_path}"]

    violations: List[str] = []
    for key, value in _items(data):
        current_path = f"{key_path}.{key}" if key_path else str(key)
        if isinstance(key, str) and key.lower() in FORBIDDEN_KEYS:
            violations.append(f"FORBIDDEN KEY DETECTED: '{key}' at path: {current_path}")
        if isinstance(value, (Mapping, list, tuple)):
            violations.extend(scan_for_pii(value, current_path, depth + 1))
    return violations


def detect_per_user_structure(data: Any) -> List[str]:
    violations: List[str] = []
    if not isinstance(data, Mapping):
        return violations
    for key, value in data.items():
        if not isinstance(value, (list, tuple)) or not value:
            continue
        first = value[0]
        if not isinstance(first, Mapping):
            continue
        hits = sum(1 for field in RECORD_LIKE_FIELDS if field in first)
        if hits >= 3:
            violations.append(
                f"SUSPICIOUS STRUCTURE: Array '{key}' contains {len(value)} object(s) "
                f"resembling individual records (fields: {', '.join(map(str, first.keys()))})"
            )
    return violations


def validate_analytics_response(payload: Any, context: str = "unknown_endpoint") -> None:
    if not isinstance(payload, (Mapping, list, tuple)):
        return
    violations = scan_for_pii(payload) + detect_per_user_structure(payload)
    if not violations:
        return

    LOGGER.error("[PRIVACY VIOLATION] Endpoint: %s | Violations: %s", context, json.dumps(violations))
    production = is_production()
    if not production and isinstance(payload, Mapping):
        LOGGER.debug("[PRIVACY VIOLATION DEBUG] Payload keys: %s", list(payload.keys()))
    raise AnalyticsPrivacyViolation(violations, context, production=production)


def protected_analytics_response(
    payload: Dict[str, Any],
    status_code: int = 200,
    context: str = "analytics_endpoint",
    headers: Dict[str, str] | None = None,
) -> JSONResponse:
    """Serialise ``payload`` only if it passes :func:`validate_analytics_response`."""
    try:
        validate_analytics_response(payload, context)
    except AnalyticsPrivacyViolation as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())
    return JSONResponse(status_code=status_code, content=payload, headers=headers)
