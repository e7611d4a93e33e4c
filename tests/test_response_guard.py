import json

import pytest

from errors import AnalyticsPrivacyViolation
from response_guard import (
    detect_per_user_structure,
    protected_analytics_response,
    scan_for_pii,
    validate_analytics_response,
)


def test_clean_aggregate_payload_passes():
    payload = {
        "success": True,
        "metrics": [{"key": "total_learners", "value": 10, "type": "count", "label": "Learners"}],
        "popularSubjects": [{"subject_area": "Math", "student_count": 4}],
    }
    assert scan_for_pii(payload) == []
    assert detect_per_user_structure(payload) == []
    validate_analytics_response(payload, "test")


def test_forbidden_keys_detected_case_insensitively():
    violations = scan_for_pii({"data": [{"Email": "a@example.com"}], "user_id": 3})
    assert any("'Email'" in violation and "data.0.Email" in violation for violation in violations)
    assert any("'user_id'" in violation for violation in violations)


def test_excessive_nesting_flagged():
    violations = scan_for_pii({"a": {"b": {"c": {"d": {"e": 1}}}}})
    assert any("Excessive nesting" in violation for violation in violations)


def test_record_like_lists_flagged():
    payload = {"rows": [{"id": 1, "status": "done", "created_at": "2024-01-01"}]}
    violations = detect_per_user_structure(payload)
    assert len(violations) == 1
    assert "rows" in violations[0]


def test_violation_message_hides_details_in_production(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    with pytest.raises(AnalyticsPrivacyViolation) as excinfo:
        validate_analytics_response({"email": "x"}, "ctx")
    body = excinfo.value.to_response()
    assert body["error"] == "privacy_violation"
    assert "violations" not in body


def test_violation_details_shown_outside_production():
    with pytest.raises(AnalyticsPrivacyViolation) as excinfo:
        validate_analytics_response({"email": "x"}, "ctx")
    body = excinfo.value.to_response()
    assert body["endpoint"] == "ctx"
    assert body["violations"]


def test_protected_response_blocks_pii():
    response = protected_analytics_response({"success": True, "username": "ada"}, context="ctx")
    assert response.status_code == 403
    assert json.loads(response.body)["error"] == "privacy_violation"


def test_protected_response_passes_headers_through():
    response = protected_analytics_response({"success": True}, headers={"X-RateLimit-Limit": "60"})
    assert response.status_code == 200
    assert response.headers["x-ratelimit-limit"] == "60"
