"""Database-backed sliding-window rate limiting.

Each admitted request is recorded in ``rate_limits``; a caller is rejected once
the number of requests inside the trailing window reaches the profile limit.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request

from db import Database
from env_validation import get_env_int
from errors import RateLimitExceeded
from schemas import UserClaims

LOGGER = logging.getLogger("eduadmin.ratelimit")

# profile -> (requests, window_seconds)
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "PUBLIC": (60, 60),
    "AUTHENTICATED": (120, 60),
    "ADMIN": (300, 60),
    "ROOT": (600, 60),
    "GENERATION": (10, 3600),
}


@dataclass(frozen=True)
class RateLimitStatus:
    limit: int
    remaining: int
    reset: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


def profile_limits(profile: str) -> Tuple[int, int]:
    if profile not in RATE_LIMITS:
        LOGGER.error("Invalid rate limit profile: %s", profile)
        profile = "PUBLIC"
    limit, window = RATE_LIMITS[profile]
    if profile == "PUBLIC":
        limit = get_env_int("PUBLIC_RATE_LIMIT", limit)
        window = get_env_int("RATE_LIMIT_WINDOW", window)
    return limit, window


def profile_for_claims(claims: Optional[UserClaims]) -> str:
    if claims is None:
        return "PUBLIC"
    if claims.role == "root":
        return "ROOT"
    if claims.role == "admin":
        return "ADMIN"
    return "AUTHENTICATED"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RateLimiter:
    def __init__(self, database: Database, clock: Callable[[], float] = time.time):
        self._database = database
        self._clock = clock

    def _window(self, identifier: str, endpoint: str, window_start: float) -> Tuple[int, Optional[float]]:
        row = self._database.query_one(
            """
            SELECT COUNT(*) AS request_count, MIN(requested_at) AS oldest_request
            FROM rate_limits
            WHERE identifier = ? AND endpoint = ? AND requested_at > ?
            """,
            (identifier, endpoint, window_start),
        )
        if row is None:
            return 0, None
        return int(row["request_count"] or 0), row["oldest_request"]

    def enforce(self, identifier: str, endpoint: str, profile: str = "PUBLIC") -> RateLimitStatus:
        """Admit and record one request, or raise :class:`RateLimitExceeded`."""
        limit, window = profile_limits(profile)
        now = self._clock()
        try:
            # Purge, count and insert hold the write lock together.
            self._database.begin(immediate=True)
            try:
                self._database.execute(
                    """
                    DELETE FROM rate_limits
                    WHERE identifier = ? AND endpoint = ? AND requested_at < ?
                    """,
                    (identifier, endpoint, now - 2 * window),
                )
                count, oldest = self._window(identifier, endpoint, now - window)
                reset = int((oldest if oldest is not None else now) + window)
                admitted = count < limit
                if admitted:
                    self._database.execute(
                        "INSERT INTO rate_limits (identifier, endpoint, requested_at) VALUES (?, ?, ?)",
                        (identifier, endpoint, now),
                    )
                self._database.commit()
            except sqlite3.Error:
                self._database.rollback()
                raise
        except sqlite3.Error as exc:
            # Fail open.
            LOGGER.error("Rate limit store error: %s", exc)
            return RateLimitStatus(limit=limit, remaining=limit, reset=int(now + window))

        if not admitted:
            LOGGER.warning(
                "RATE_LIMIT_EXCEEDED | Profile: %s | Identifier: %s | Endpoint: %s | Count: %d/%d",
                profile,
                identifier,
                endpoint,
                count,
                limit,
            )
            raise RateLimitExceeded(limit, reset, endpoint, now=now)

        return RateLimitStatus(limit=limit, remaining=max(0, limit - count - 1), reset=reset)

    def status(self, identifier: str, endpoint: str, profile: str = "PUBLIC") -> RateLimitStatus:
        limit, window = profile_limits(profile)
        now = self._clock()
        count, oldest = self._window(identifier, endpoint, now - window)
        reset = int((oldest if oldest is not None else now) + window)
        return RateLimitStatus(limit=limit, remaining=max(0, limit - count), reset=reset)
