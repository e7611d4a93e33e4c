# app.py: education platform admin & reporting API
# - public aggregate metrics (rate limited, audited, privacy guarded)
# - auth + admin endpoints, also reachable through the course-factory proxy paths

import hashlib
import hmac
import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

import db
import public_metrics
from audit_log import AuditLog
from auth_middleware import current_claims, require_roles
from db import Database, get_database
from errors import ApiError, InternalError, InvalidRequest, MethodNotAllowed, NotFound, AuthenticationRequired
from proxy import ProxyMiddleware
from rate_limiter import RateLimiter, client_ip, profile_for_claims
from response_guard import protected_analytics_response
from schemas import Agent, Course, DeleteCourseBody, LoginBody, UserClaims
from security_headers import headers_for
from jwt_auth import jwt_generate

logger = logging.getLogger("eduadmin.api")

_APP_LOGGER = logging.getLogger("eduadmin")
if not _APP_LOGGER.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    _APP_LOGGER.addHandler(_handler)
_APP_LOGGER.setLevel(logging.INFO)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        from env_validation import validate_environment
        validate_environment()

        db.init()
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Education Admin API", version="1.0.0", lifespan=_lifespan)
app.add_middleware(ProxyMiddleware)


@app.middleware("http")
async def _apply_security_headers(request: Request, call_next):
    response = await call_next(request)
    for key, value in headers_for(request.url.path, request.headers.get("origin")).items():
        response.headers.setdefault(key, value)
    return response


@app.exception_handler(ApiError)
async def _api_error_handler(_: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response(), headers=exc.headers or None)


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(_: Request, exc: RequestValidationError):
    logger.info("Rejected request body: %s", exc.errors())
    return JSONResponse(status_code=400, content=InvalidRequest("Invalid input").to_response())


ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

_PBKDF2_ITERATIONS = 150_000
_PBKDF2_DIGEST = "sha256"


# ---------- Helpers ----------
def _pbkdf2_hash(password: str, salt_hex: str) -> str:
    return hashlib.pbkdf2_hmac(
        _PBKDF2_DIGEST,
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        _PBKDF2_ITERATIONS,
    ).hex()


def _hash_password(password: str) -> str:
    salt_hex = secrets.token_bytes(16).hex()
    return f"{salt_hex}${_pbkdf2_hash(password, salt_hex)}"


def _verify_password(password: str, stored: Optional[str]) -> bool:
    salt_hex, _, digest = (stored or "").partition("$")
    if not salt_hex or not digest:
        return False
    try:
        derived = _pbkdf2_hash(password, salt_hex)
    except ValueError:
        return False
    return hmac.compare_digest(digest, derived)


def _audit_log() -> AuditLog:
    return AuditLog()


def _limit_caller(request: Request, claims: UserClaims, database: Database, label: str, response: Response) -> None:
    identifier = str(claims.user_id) if claims.user_id is not None else client_ip(request)
    status = RateLimiter(database).enforce(identifier, label, profile_for_claims(claims))
    response.headers.update(status.headers())


_ADMIN = require_roles("admin", "root")
_ROOT = require_roles("root")


# ---------- Public metrics ----------
@app.api_route("/api/public/metrics", methods=ALL_METHODS)
def get_public_metrics(request: Request, database: Database = Depends(get_database)):
    label = public_metrics.ENDPOINT_LABEL
    audit = _audit_log()

    limit_status = RateLimiter(database).enforce(client_ip(request), label, "PUBLIC")

    if request.query_params:
        audit.log_failure(label, "unexpected_parameters", request=request)
        raise InvalidRequest("This endpoint does not accept parameters")

    if request.method != "GET":
        raise MethodNotAllowed()

    try:
        payload = public_metrics.fetch_public_payload(database)
    except Exception as exc:
        logger.exception("Public metrics error: %s", exc)
        audit.log_failure(label, "internal_error", request=request)
        raise InternalError("Failed to fetch public metrics") from exc

    audit.log_access(
        label,
        "view",
        "anonymous",
        "public",
        request=request,
        success=True,
        metadata={"metric_count": len(payload["metrics"])},
    )
    return protected_analytics_response(payload, 200, label, headers=limit_status.headers())


# ---------- Auth ----------
@app.post("/api/auth/login.php")
def login(body: LoginBody, database: Database = Depends(get_database)):
    username = body.username.strip()
    if not username or not body.password:
        raise InvalidRequest("Username and password required")

    user = database.query_one(
        """
        SELECT user_id, username, email, password_hash, full_name, role
        FROM users
        WHERE (username = ? OR email = ?) AND is_active = 1
        LIMIT 1
        """,
        (username, username),
    )
    if user is None or not _verify_password(body.password, user["password_hash"]):
        logger.info("Login attempt failed for username: %s", username)
        raise AuthenticationRequired("Invalid credentials")

    database.execute("UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE user_id = ?", (user["user_id"],))
    token = jwt_generate(user["user_id"], user["username"], user["role"])
    logger.info("User logged in: ID=%s role=%s", user["user_id"], user["role"])
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "user": {
            "userId": user["user_id"],
            "username": user["username"],
            "name": user["full_name"],
            "email": user["email"],
            "role": user["role"],
        },
    }


@app.get("/api/auth/validate.php")
def validate_token(claims: UserClaims = Depends(current_claims)):
    return {
        "valid": True,
        "user": {"userId": claims.user_id, "username": claims.username, "role": claims.role},
    }


# ---------- Admin ----------
@app.get("/api/admin/list_courses.php")
def list_courses(
    request: Request,
    response: Response,
    claims: UserClaims = Depends(_ADMIN),
    database: Database = Depends(get_database),
):
    _limit_caller(request, claims, database, "list_courses", response)
    rows = database.query(
        """
        SELECT course_id, course_name, subject_area, difficulty_level, is_active, created_at
        FROM courses
        WHERE is_active = 1
        ORDER BY created_at DESC, course_id DESC
        """
    )
    courses = [Course(**row).model_dump() for row in rows]
    return {"success": True, "courses": courses, "total": len(courses)}


@app.post("/api/admin/delete_course.php")
def delete_course(
    body: DeleteCourseBody,
    request: Request,
    response: Response,
    claims: UserClaims = Depends(_ADMIN),
    database: Database = Depends(get_database),
):
    _limit_caller(request, claims, database, "delete_course", response)
    course = database.query_one(
        "SELECT course_id, course_name FROM courses WHERE course_id = ?",
        (body.course_id,),
    )
    if course is None:
        raise NotFound(f"Course ID {body.course_id} not found")

    database.begin()
    try:
        if body.hard:
            database.execute("DELETE FROM course_assignments WHERE course_id = ?", (body.course_id,))
            affected = database.execute("DELETE FROM courses WHERE course_id = ?", (body.course_id,))
        else:
            affected = database.execute("UPDATE courses SET is_active = 0 WHERE course_id = ?", (body.course_id,))
        database.commit()
    except Exception:
        database.rollback()
        raise

    logger.info(
        "Course %s (%s) %s by user %s",
        course["course_id"],
        course["course_name"],
        "deleted" if body.hard else "deactivated",
        claims.user_id,
    )
    return {
        "success": affected > 0,
        "course_id": course["course_id"],
        "mode": "hard" if body.hard else "soft",
    }


@app.get("/api/admin/list_agents.php")
def list_agents(
    request: Request,
    response: Response,
    claims: UserClaims = Depends(_ADMIN),
    database: Database = Depends(get_database),
):
    _limit_caller(request, claims, database, "list_agents", response)
    rows = database.query(
        """
        SELECT agent_id, agent_name, temperature, max_tokens, system_prompt, is_student_advisor
        FROM agents
        WHERE is_active = 1
        ORDER BY agent_name ASC
        """
    )
    return {"success": True, "agents": [Agent(**row).model_dump() for row in rows]}


@app.get("/api/admin/audit_logs.php")
def audit_logs(limit: int = 100, claims: UserClaims = Depends(_ROOT)):
    if limit < 1 or limit > 500:
        raise InvalidRequest("limit must be between 1 and 500")
    return {"success": True, "entries": _audit_log().recent(limit)}


def main() -> None:
    """Run the API server."""
    import uvicorn

    from env_validation import get_env_bool, get_env_int

    uvicorn.run(
        "app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=get_env_int("PORT", 8000),
        reload=get_env_bool("RELOAD"),
        log_level="info",
    )


if __name__ == "__main__":
    main()
