"""Pydantic records for token claims, request bodies and the rows we read."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

__all__ = [
    "UserClaims",
    "MetricRow",
    "DailyRollupRow",
    "Course",
    "Agent",
    "LoginBody",
    "DeleteCourseBody",
]


class UserClaims(BaseModel):
    """Decoded token payload. Lives for one request only."""

    user_id: Optional[int] = Field(default=None, alias="userId")
    username: str = ""
    role: str = ""
    iat: Optional[int] = None
    exp: Optional[int] = None

    model_config = {
        "extra": "allow",
        "populate_by_name": True,
    }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UserClaims":
        data = dict(payload)
        if data.get("role") is None:
            data["role"] = ""
        return cls.model_validate(data)


class MetricRow(BaseModel):
    metric_key: str
    metric_value: float = 0.0
    metric_type: str = "count"
    display_label: str
    display_order: int = 0
    last_updated: Optional[str] = None

    def display_value(self) -> int | float:
        if self.metric_type == "count":
            return int(round(self.metric_value))
        return round(float(self.metric_value), 2)

    def to_public(self) -> Dict[str, Any]:
        return {
            "key": self.metric_key,
            "value": self.display_value(),
            "type": self.metric_type,
            "label": self.display_label,
            "lastUpdated": self.last_updated,
        }


class DailyRollupRow(BaseModel):
    rollup_date: str
    total_active_users: int = 0
    lessons_completed: int = 0
    avg_mastery_score: float = 0.0


class Course(BaseModel):
    course_id: int
    course_name: str
    subject_area: Optional[str] = None
    difficulty_level: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None


class Agent(BaseModel):
    agent_id: int
    agent_name: str
    temperature: float
    max_tokens: int
    system_prompt: str = ""
    is_student_advisor: bool = False

    @property
    def prompt_length(self) -> int:
        return len(self.system_prompt)


class LoginBody(BaseModel):
    username: str = ""
    password: str = ""


class DeleteCourseBody(BaseModel):
    course_id: int
    hard: bool = False
