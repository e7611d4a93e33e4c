import sys
from datetime import date, timedelta
from pathlib import Path

import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts import aggregate_analytics, check_agents, probe_endpoints


def test_check_agents_default_lists_hawkeinstein_and_advisors(temp_db, database, capsys):
    database.insert(
        "INSERT INTO agents (agent_name, temperature, max_tokens, system_prompt, is_student_advisor) VALUES (?,?,?,?,1)",
        ("Student Advisor", 0.3, 800, "Guide the learner."),
    )
    database.insert("INSERT INTO agents (agent_name, system_prompt) VALUES (?, ?)", ("Hawkeinstein Tutor", "Explain physics."))
    database.insert("INSERT INTO agents (agent_name) VALUES (?)", ("Grader",))

    assert check_agents.main(["--db", temp_db]) == 0
    out = capsys.readouterr().out
    assert "Agent: Student Advisor" in out
    assert "Temperature: 0.3" in out
    assert "Max Tokens: 800" in out
    assert "Prompt Length: 18 chars" in out
    assert "-" * 80 in out
    assert "Agent: Hawkeinstein Tutor" in out
    assert "Grader" not in out

    check_agents.main(["--pattern", "", "--db", temp_db])
    out = capsys.readouterr().out
    assert "Agent: Student Advisor" in out
    assert "Hawkeinstein" not in out

    check_agents.main(["--pattern", "Grader", "--db", temp_db])
    out = capsys.readouterr().out
    assert "Agent: Grader" in out
    assert "Agent: Student Advisor" in out
    assert "Hawkeinstein" not in out


def test_aggregate_analytics_builds_rollup_and_metrics(temp_db, database, capsys):
    target = date.today() - timedelta(days=1)
    day = target.isoformat()
    for username, role in (("s1", "student"), ("s2", "student"), ("t1", "teacher")):
        database.insert(
            "INSERT INTO users (username, password_hash, role, created_at) VALUES (?, 'x', ?, ?)",
            (username, role, f"{day} 09:00:00"),
        )
    course_id = database.insert("INSERT INTO courses (course_name, subject_area) VALUES ('Algebra', 'Math')")
    database.execute(
        "INSERT INTO course_assignments (course_id, user_id, status) VALUES (?, 1, 'completed'), (?, 2, 'assigned')",
        (course_id, course_id),
    )
    for user_id, metric_type, value, hour in (
        (1, "completion", 1, 9),
        (1, "mastery", 60, 10),
        (1, "mastery", 90, 11),
        (2, "mastery", 75, 12),
        (2, "time_spent", 90, 13),
        (2, "time_spent", 30, 14),
    ):
        database.execute(
            "INSERT INTO progress_tracking (user_id, course_id, metric_type, metric_value, recorded_at) VALUES (?,?,?,?,?)",
            (user_id, course_id, metric_type, value, f"{day} {hour:02d}:00:00"),
        )

    assert aggregate_analytics.main(["--date", day, "--db", temp_db]) == 0
    out = capsys.readouterr().out
    assert f"=== Analytics Aggregation Started ({day}) ===" in out
    assert "Completed Successfully" in out

    rollup = database.query_one("SELECT * FROM analytics_daily_rollup WHERE rollup_date = ?", (day,))
    assert rollup["total_active_users"] == 2
    assert rollup["new_users"] == 3
    assert rollup["lessons_completed"] == 1
    assert rollup["quizzes_attempted"] == 3
    assert rollup["quizzes_passed"] == 2
    assert rollup["total_study_time_minutes"] == 120
    assert rollup["avg_mastery_score"] == 75.0

    metrics = {
        row["metric_key"]: row
        for row in database.query("SELECT * FROM analytics_public_metrics")
    }
    assert set(metrics) == set(aggregate_analytics.PUBLIC_METRIC_DEFINITIONS)
    assert metrics["total_learners"]["metric_value"] == 2
    assert metrics["course_completion_rate"]["metric_value"] == 50.0
    assert metrics["avg_mastery_improvement"]["metric_value"] == 30.0
    assert metrics["total_study_hours"]["metric_value"] == 2
    assert metrics["total_learners"]["display_order"] == 1

    # Re-running the same day updates in place.
    assert aggregate_analytics.main(["--date", day, "--db", temp_db]) == 0
    assert database.query_one("SELECT COUNT(*) AS n FROM analytics_daily_rollup")["n"] == 1


def test_aggregate_analytics_rejects_bad_date(temp_db, capsys):
    assert aggregate_analytics.main(["--date", "yesterday", "--db", temp_db]) == 1
    assert "Invalid --date value" in capsys.readouterr().err


class FakeResponse:
    def __init__(self, status_code, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        key = (method, "/" + url.split("/", 3)[-1], bool(kwargs.get("params")))
        if key not in self.responses:
            raise requests.ConnectionError(f"unexpected request {method} {url}")
        return self.responses[key]

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


def _healthy_responses():
    return {
        ("GET", "/api/public/metrics", False): FakeResponse(
            200, {"success": True}, {"Cache-Control": "public, max-age=300"}
        ),
        ("GET", "/api/public/metrics", True): FakeResponse(400),
        ("GET", "/course_factory/api/admin/probe_missing_endpoint.php", False): FakeResponse(
            404, {"error": "Endpoint not found: probe_missing_endpoint.php"}
        ),
    }


def test_smoke_check_all_pass(capsys):
    session = FakeSession(_healthy_responses())
    assert probe_endpoints.main(["--base-url", "http://api.test/"], session=session) == 0
    out = capsys.readouterr().out
    assert "3/3 probes passed" in out
    assert all(url.startswith("http://api.test/") and "api.test//" not in url for _, url, _ in session.calls)
    assert all(kwargs["timeout"] == 10.0 for _, _, kwargs in session.calls)


def test_smoke_check_reports_failures(capsys):
    responses = _healthy_responses()
    responses[("GET", "/api/public/metrics", True)] = FakeResponse(200)
    assert probe_endpoints.main(["--base-url", "http://api.test"], session=FakeSession(responses)) == 1
    out = capsys.readouterr().out
    assert "FAIL  public metrics rejects parameters: expected HTTP 400, got 200" in out
    assert "2/3 probes passed" in out


def test_smoke_check_login_flow(capsys):
    responses = _healthy_responses()
    responses[("POST", "/course_factory/api/auth/login.php", False)] = FakeResponse(200, {"token": "abc"})
    responses[("GET", "/course_factory/api/auth/validate.php", False)] = FakeResponse(200, {"valid": True})
    session = FakeSession(responses)
    exit_code = probe_endpoints.main(
        ["--base-url", "http://api.test", "--username", "ops", "--password", "pw"],
        session=session,
    )
    assert exit_code == 0
    assert "4/4 probes passed" in capsys.readouterr().out
    assert session.calls[-1][2]["headers"] == {"Authorization": "Bearer abc"}


def test_smoke_check_connection_error(capsys):
    assert probe_endpoints.main(["--base-url", "http://api.test"], session=FakeSession({})) == 1
    assert "request failed" in capsys.readouterr().out


def test_smoke_check_leaves_injected_session_untouched(capsys):
    session = FakeSession(_healthy_responses())
    original_request = session.request
    for _ in range(2):
        assert probe_endpoints.main(["--base-url", "http://api.test", "--timeout", "2.5"], session=session) == 0
    capsys.readouterr()

    assert session.request == original_request
    assert "request" not in vars(session)
    assert len(session.calls) == 6
    assert all(kwargs["timeout"] == 2.5 for _, _, kwargs in session.calls)
