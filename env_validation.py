"""Environment variable validation and management."""

import os
import logging
from typing import Dict, List

logger = logging.getLogger("eduadmin.config")

DEFAULT_JWT_SECRET = "dev-only-jwt-secret-change-me-before-deploying"

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DB_PATH": "data.db",
        "APP_ENV": "production",
        "JWT_ALGORITHM": "HS256",
        "SESSION_LIFETIME": str(8 * 3600),
        "AUDIT_LOG_PATH": "/tmp/analytics_audit.log",
        "PUBLIC_RATE_LIMIT": "60",
        "RATE_LIMIT_WINDOW": "60",
        "ALLOWED_ORIGINS": "*",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    for var in ("SESSION_LIFETIME", "PUBLIC_RATE_LIMIT", "RATE_LIMIT_WINDOW"):
        if get_env_int(var, 0) <= 0:
            raise EnvironmentError(f"{var} must be a positive integer")

    if not os.getenv("JWT_SECRET"):
        if os.environ["APP_ENV"] == "production":
            raise EnvironmentError("Missing required environment variable: JWT_SECRET")
        logger.warning("JWT_SECRET not set; using the development secret")

def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}

def get_env_int(name: str, default: int) -> int:
    """Get integer value from environment variable."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise EnvironmentError(f"Invalid integer for {name}: {value}") from None

def get_allowed_origins() -> List[str]:
    raw = os.getenv("ALLOWED_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()] or ["*"]

def is_production() -> bool:
    return os.getenv("APP_ENV", "production") == "production"

def jwt_settings() -> Dict[str, object]:
    """Token settings read at call time so tests can patch the environment."""
    return {
        "secret": os.getenv("JWT_SECRET") or DEFAULT_JWT_SECRET,
        "algorithm": os.getenv("JWT_ALGORITHM") or "HS256",
        "lifetime": get_env_int("SESSION_LIFETIME", 8 * 3600),
    }
