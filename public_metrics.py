"""Read paths and payload shaping for the public aggregate-metrics endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from db import Database
from schemas import DailyRollupRow, MetricRow

ENDPOINT_LABEL = "public_metrics"
PRIVACY_NOTICE = "All data is aggregated. No individual student information is displayed."
TREND_DAYS = 7
POPULAR_SUBJECT_LIMIT = 5


class MetricsRepository:
    def __init__(self, database: Database):
        self._database = database

    def metrics(self) -> List[MetricRow]:
        rows = self._database.query(
            """
            SELECT metric_key, metric_value, metric_type, display_label,
                   display_order, last_updated
            FROM analytics_public_metrics
            ORDER BY display_order ASC
            """
        )
        return [MetricRow(**row) for row in rows]

    def weekly_trend(self, days: int = TREND_DAYS) -> List[DailyRollupRow]:
        rows = self._database.query(
            """
            SELECT rollup_date, total_active_users, lessons_completed, avg_mastery_score
            FROM analytics_daily_rollup
            WHERE rollup_date >= date('now', ?)
            ORDER BY rollup_date ASC
            """,
            (f"-{int(days)} days",),
        )
        return [DailyRollupRow(**row) for row in rows]

    def latest_rollup(self) -> Optional[DailyRollupRow]:
        row = self._database.query_one(
            """
            SELECT rollup_date, total_active_users, lessons_completed, avg_mastery_score
            FROM analytics_daily_rollup
            ORDER BY rollup_date DESC
            LIMIT 1
            """
        )
        return DailyRollupRow(**row) if row is not None else None

    def popular_subjects(self, limit: int = POPULAR_SUBJECT_LIMIT) -> List[Dict[str, Any]]:
        rows = self._database.query(
            """
            SELECT c.subject_area, COUNT(DISTINCT ca.user_id) AS student_count
            FROM courses c
            JOIN course_assignments ca ON c.course_id = ca.course_id
            WHERE c.is_active = 1
            GROUP BY c.subject_area
            ORDER BY student_count DESC, c.subject_area ASC
            LIMIT ?
            """,
            (int(limit),),
        )
        return [
            {"subject_area": row["subject_area"], "student_count": int(row["student_count"])}
            for row in rows
        ]


def build_public_payload(
    metrics: List[MetricRow],
    weekly_trend: List[DailyRollupRow],
    latest: Optional[DailyRollupRow],
    popular_subjects: List[Dict[str, Any]],
    *,
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    stamp = generated_at or datetime.now()
    return {
        "success": True,
        "metrics": [metric.to_public() for metric in metrics],
        "recentActivity": {
            "users24h": latest.total_active_users if latest else 0,
            "lessons24h": latest.lessons_completed if latest else 0,
        },
        "weeklyTrend": [row.model_dump() for row in weekly_trend],
        "popularSubjects": popular_subjects,
        "lastUpdated": stamp.strftime("%Y-%m-%d %H:%M:%S"),
        "privacyNotice": PRIVACY_NOTICE,
    }


def fetch_public_payload(database: Database) -> Dict[str, Any]:
    repository = MetricsRepository(database)
    return build_public_payload(
        repository.metrics(),
        repository.weekly_trend(),
        repository.latest_rollup(),
        repository.popular_subjects(),
    )
