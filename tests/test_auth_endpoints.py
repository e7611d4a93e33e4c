import pytest

import app
from _asgi import get, post
from jwt_auth import jwt_generate, jwt_verify


def _create_user(database, username, password, role="student", *, active=1):
    return database.insert(
        """
        INSERT INTO users (username, email, password_hash, full_name, role, is_active)
        VALUES (?,?,?,?,?,?)
        """,
        (username, f"{username}@example.com", app._hash_password(password), username.title(), role, active),
    )


def _auth(role, user_id=1):
    return {"Authorization": f"Bearer {jwt_generate(user_id, f'user{user_id}', role)}"}


@pytest.fixture
def courses(database):
    ids = [
        database.insert(
            "INSERT INTO courses (course_name, subject_area, difficulty_level) VALUES (?,?,?)",
            (name, "Science", "beginner"),
        )
        for name in ("Chemistry", "Physics")
    ]
    database.execute("INSERT INTO course_assignments (course_id, user_id) VALUES (?, 3)", (ids[0],))
    return ids


def test_password_hash_round_trip():
    stored = app._hash_password("s3cret")
    assert stored != app._hash_password("s3cret")
    assert app._verify_password("s3cret", stored)
    assert not app._verify_password("wrong", stored)
    assert not app._verify_password("s3cret", None)
    assert not app._verify_password("s3cret", "not-a-hash")


def test_login_returns_token_and_updates_last_login(database):
    user_id = _create_user(database, "ada", "lovelace", role="admin")
    status, body, _ = post("/api/auth/login.php", {"username": "ada", "password": "lovelace"})

    assert status == 200
    assert body["success"] is True
    assert body["user"] == {
        "userId": user_id,
        "username": "ada",
        "name": "Ada",
        "email": "ada@example.com",
        "role": "admin",
    }
    claims = jwt_verify(body["token"])
    assert claims["userId"] == user_id and claims["role"] == "admin"
    assert database.query_one("SELECT last_login FROM users WHERE user_id = ?", (user_id,))["last_login"]


def test_login_accepts_email(database):
    _create_user(database, "grace", "hopper")
    status, body, _ = post("/api/auth/login.php", {"username": "grace@example.com", "password": "hopper"})
    assert status == 200
    assert body["user"]["username"] == "grace"


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"username": "ada", "password": "nope"}, 401),
        ({"username": "nobody", "password": "x"}, 401),
        ({"username": "", "password": "x"}, 400),
        ({"username": "ada"}, 400),
    ],
)
def test_login_failures(database, payload, expected):
    _create_user(database, "ada", "lovelace")
    status, body, _ = post("/api/auth/login.php", payload)
    assert status == expected
    assert body["success"] is False


def test_inactive_user_cannot_log_in(database):
    _create_user(database, "gone", "pw", active=0)
    assert post("/api/auth/login.php", {"username": "gone", "password": "pw"})[0] == 401


def test_validate_token(temp_db):
    status, body, _ = get("/api/auth/validate.php", headers=_auth("teacher", 4))
    assert status == 200
    assert body == {"valid": True, "user": {"userId": 4, "username": "user4", "role": "teacher"}}

    status, body, _ = get("/api/auth/validate.php")
    assert status == 401
    assert body == {"success": False, "error": "Authentication required"}


def test_list_courses_requires_admin(courses):
    assert get("/api/admin/list_courses.php")[0] == 401
    status, body, _ = get("/api/admin/list_courses.php", headers=_auth("teacher"))
    assert status == 403
    assert body == {"success": False, "error": "Insufficient permissions"}

    status, body, headers = get("/api/admin/list_courses.php", headers=_auth("admin"))
    assert status == 200
    assert body["total"] == 2
    assert {course["course_name"] for course in body["courses"]} == {"Chemistry", "Physics"}
    assert headers["x-ratelimit-limit"] == "300"


def test_soft_delete_course(courses, database):
    status, body, _ = post("/api/admin/delete_course.php", {"course_id": courses[0]}, headers=_auth("root"))
    assert status == 200
    assert body == {"success": True, "course_id": courses[0], "mode": "soft"}
    row = database.query_one("SELECT is_active FROM courses WHERE course_id = ?", (courses[0],))
    assert row["is_active"] == 0
    assert get("/api/admin/list_courses.php", headers=_auth("admin"))[1]["total"] == 1


def test_hard_delete_course_removes_assignments(courses, database):
    status, body, _ = post(
        "/api/admin/delete_course.php",
        {"course_id": courses[0], "hard": True},
        headers=_auth("admin"),
    )
    assert status == 200
    assert body["mode"] == "hard"
    assert database.query("SELECT * FROM courses WHERE course_id = ?", (courses[0],)) == []
    assert database.query("SELECT * FROM course_assignments") == []


def test_delete_unknown_course(temp_db):
    status, body, _ = post("/api/admin/delete_course.php", {"course_id": 999}, headers=_auth("admin"))
    assert status == 404
    assert body == {"success": False, "error": "Course ID 999 not found"}


def test_delete_course_rejects_malformed_body(temp_db):
    status, body, _ = post("/api/admin/delete_course.php", {"course_id": "abc"}, headers=_auth("admin"))
    assert status == 400
    assert body == {"success": False, "error": "Invalid input"}


def test_list_agents(database):
    database.insert(
        "INSERT INTO agents (agent_name, system_prompt, is_student_advisor) VALUES (?,?,1)",
        ("Advisor", "Be kind."),
    )
    database.insert("INSERT INTO agents (agent_name, is_active) VALUES (?, 0)", ("Retired",))
    status, body, _ = get("/api/admin/list_agents.php", headers=_auth("admin"))
    assert status == 200
    assert [agent["agent_name"] for agent in body["agents"]] == ["Advisor"]
    assert body["agents"][0]["is_student_advisor"] is True


def test_audit_logs_are_root_only(temp_db):
    get("/api/public/metrics")
    assert get("/api/admin/audit_logs.php", headers=_auth("admin"))[0] == 403

    status, body, _ = get("/api/admin/audit_logs.php", headers=_auth("root"))
    assert status == 200
    assert body["entries"][0]["endpoint"] == "public_metrics"

    assert get("/api/admin/audit_logs.php", query={"limit": "0"}, headers=_auth("root"))[0] == 400
