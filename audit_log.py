"""Append-only audit trail for analytics endpoint access.

Entries are JSON lines in a file kept apart from the analytics data. Writing the
trail is best-effort: a failed write is logged and the request carries on.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Request

from rate_limiter import client_ip

LOGGER = logging.getLogger("eduadmin.audit")

ROTATION_THRESHOLD_BYTES = 10 * 1024 * 1024


def default_audit_path() -> str:
    return os.getenv("AUDIT_LOG_PATH", "/tmp/analytics_audit.log")


class AuditLog:
    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or default_audit_path())

    def log_access(
        self,
        endpoint: str,
        action: str,
        user_id: str,
        user_role: str,
        *,
        request: Optional[Request] = None,
        parameters: Optional[Dict[str, Any]] = None,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        now = datetime.now().astimezone()
        entry = {
            "timestamp": now.strftime("%Y-%m-%d %H:%M:%S"),
            "iso_timestamp": now.isoformat(),
            "endpoint": endpoint,
            "action": action,
            "user_id": user_id,
            "user_role": user_role,
            "client_ip": client_ip(request) if request is not None else "unknown",
            "user_agent": request.headers.get("user-agent", "unknown") if request is not None else "unknown",
            "request_method": request.method if request is not None else "unknown",
            "parameters": parameters or {},
            "success": success,
            "metadata": metadata or {},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as exc:
            LOGGER.error("Failed to write audit log for endpoint %s: %s", endpoint, exc)

        LOGGER.info(
            "Endpoint: %s | Action: %s | User: %s (%s) | Success: %s",
            endpoint,
            action,
            user_id,
            user_role,
            "YES" if success else "NO",
        )
        return entry

    def log_failure(
        self,
        endpoint: str,
        reason: str,
        user_id: str = "anonymous",
        *,
        request: Optional[Request] = None,
    ) -> Dict[str, Any]:
        return self.log_access(
            endpoint,
            "access_denied",
            user_id,
            "unknown",
            request=request,
            success=False,
            metadata={"failure_reason": reason},
        )

    def recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent entries first."""
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            LOGGER.error("Failed to read audit log: %s", exc)
            return []

        entries: List[Dict[str, Any]] = []
        for line in lines[-limit:] if limit > 0 else []:
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(entry, dict):
                entries.append(entry)
        entries.reverse()
        return entries

    def needs_rotation(self, max_bytes: int = ROTATION_THRESHOLD_BYTES) -> bool:
        try:
            return self.path.stat().st_size > max_bytes
        except FileNotFoundError:
            return False

    def rotate(self) -> Optional[Path]:
        if not self.path.exists():
            return None
        archive = self.path.with_name(f"{self.path.name}.{datetime.now():%Y-%m-%d-%H%M%S}.archive")
        try:
            self.path.rename(archive)
        except OSError as exc:
            LOGGER.error("Failed to rotate audit log: %s", exc)
            return None
        LOGGER.info("Rotated audit log to: %s", archive)
        return archive
