"""Populate analytics rollups from raw progress data.

Run daily (e.g. from cron) after midnight UTC; by default it processes yesterday.
Builds the platform-wide daily rollup row and refreshes the cached values shown
by the public metrics endpoint. Aggregates only: no per-learner output.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import Database, init_schema
from db_pool import SQLiteConnectionPool

logger = logging.getLogger("eduadmin.aggregation")

PASSING_MASTERY = 70

# metric_key -> (display_label, metric_type, display_order)
PUBLIC_METRIC_DEFINITIONS: Dict[str, tuple[str, str, int]] = {
    "total_learners": ("Total Learners", "count", 1),
    "active_courses": ("Active Courses", "count", 2),
    "lessons_completed": ("Lessons Completed", "count", 3),
    "course_completion_rate": ("Course Completion Rate", "percentage", 4),
    "avg_quiz_score": ("Average Quiz Score", "percentage", 5),
    "avg_mastery_improvement": ("Average Mastery Improvement", "percentage", 6),
    "total_study_hours": ("Total Study Hours", "count", 7),
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--date",
        type=str,
        default=None,
        help="Day to aggregate as YYYY-MM-DD (default: yesterday, UTC)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=os.getenv("DB_PATH", "data.db"),
        help="Path to the SQLite database (default: $DB_PATH or data.db)",
    )
    return parser


def _scalar(database: Database, sql: str, params: Sequence[Any] = (), default: float = 0) -> float:
    row = database.query_one(sql, params)
    if row is None:
        return default
    value = next(iter(row.values()))
    return default if value is None else value


def build_daily_rollup(database: Database, target: date) -> Dict[str, Any]:
    day = target.isoformat()
    active_users = _scalar(
        database,
        "SELECT COUNT(DISTINCT user_id) FROM progress_tracking WHERE date(recorded_at) = ?",
        (day,),
    )
    new_users = _scalar(database, "SELECT COUNT(*) FROM users WHERE date(created_at) = ?", (day,))
    activity = database.query_one(
        """
        SELECT
          SUM(CASE WHEN metric_type = 'completion' THEN 1 ELSE 0 END) AS lessons,
          SUM(CASE WHEN metric_type = 'mastery' THEN 1 ELSE 0 END) AS quizzes_attempted,
          SUM(CASE WHEN metric_type = 'mastery' AND metric_value >= ? THEN 1 ELSE 0 END) AS quizzes_passed,
          SUM(CASE WHEN metric_type = 'time_spent' THEN metric_value ELSE 0 END) AS study_minutes,
          AVG(CASE WHEN metric_type = 'mastery' THEN metric_value END) AS avg_mastery
        FROM progress_tracking
        WHERE date(recorded_at) = ?
        """,
        (PASSING_MASTERY, day),
    ) or {}

    return {
        "rollup_date": day,
        "total_active_users": int(active_users),
        "new_users": int(new_users),
        "lessons_completed": int(activity.get("lessons") or 0),
        "quizzes_attempted": int(activity.get("quizzes_attempted") or 0),
        "quizzes_passed": int(activity.get("quizzes_passed") or 0),
        "total_study_time_minutes": int(round(activity.get("study_minutes") or 0)),
        "avg_mastery_score": round(float(activity.get("avg_mastery") or 0), 2),
    }


def store_daily_rollup(database: Database, rollup: Dict[str, Any]) -> None:
    database.execute(
        """
        INSERT INTO analytics_daily_rollup (
          rollup_date, total_active_users, new_users, lessons_completed,
          quizzes_attempted, quizzes_passed, total_study_time_minutes, avg_mastery_score
        ) VALUES (?,?,?,?,?,?,?,?)
        ON CONFLICT(rollup_date) DO UPDATE SET
          total_active_users = excluded.total_active_users,
          new_users = excluded.new_users,
          lessons_completed = excluded.lessons_completed,
          quizzes_attempted = excluded.quizzes_attempted,
          quizzes_passed = excluded.quizzes_passed,
          total_study_time_minutes = excluded.total_study_time_minutes,
          avg_mastery_score = excluded.avg_mastery_score,
          updated_at = CURRENT_TIMESTAMP
        """,
        (
            rollup["rollup_date"],
            rollup["total_active_users"],
            rollup["new_users"],
            rollup["lessons_completed"],
            rollup["quizzes_attempted"],
            rollup["quizzes_passed"],
            rollup["total_study_time_minutes"],
            rollup["avg_mastery_score"],
        ),
    )


def compute_public_metrics(database: Database) -> Dict[str, float]:
    improvement = _scalar(
        database,
        """
        SELECT AVG(improvement) FROM (
          SELECT MAX(metric_value) - MIN(metric_value) AS improvement
          FROM progress_tracking
          WHERE metric_type = 'mastery'
          GROUP BY user_id
          HAVING COUNT(*) > 1
        )
        """,
    )
    completion_rate = _scalar(
        database,
        """
        SELECT 100.0 * SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) / COUNT(*)
        FROM course_assignments
        """,
    )
    study_minutes = _scalar(
        database,
        "SELECT SUM(metric_value) FROM progress_tracking WHERE metric_type = 'time_spent'",
    )
    return {
        "total_learners": _scalar(database, "SELECT COUNT(*) FROM users WHERE role = 'student'"),
        "active_courses": _scalar(database, "SELECT COUNT(*) FROM courses WHERE is_active = 1"),
        "lessons_completed": _scalar(
            database,
            "SELECT COUNT(*) FROM progress_tracking WHERE metric_type = 'completion'",
        ),
        "course_completion_rate": round(completion_rate, 2),
        "avg_quiz_score": round(
            _scalar(database, "SELECT AVG(metric_value) FROM progress_tracking WHERE metric_type = 'mastery'"),
            2,
        ),
        "avg_mastery_improvement": round(improvement, 2),
        "total_study_hours": round(study_minutes / 60),
    }


def store_public_metrics(database: Database, values: Dict[str, float]) -> None:
    for key, value in values.items():
        label, metric_type, order = PUBLIC_METRIC_DEFINITIONS[key]
        database.execute(
            """
            INSERT INTO analytics_public_metrics (
              metric_key, metric_value, metric_type, display_label, display_order, last_updated
            ) VALUES (?,?,?,?,?,CURRENT_TIMESTAMP)
            ON CONFLICT(metric_key) DO UPDATE SET
              metric_value = excluded.metric_value,
              last_updated = CURRENT_TIMESTAMP
            """,
            (key, value, metric_type, label, order),
        )


def run(database: Database, target: date) -> Dict[str, Any]:
    database.begin()
    try:
        rollup = build_daily_rollup(database, target)
        store_daily_rollup(database, rollup)
        metrics = compute_public_metrics(database)
        store_public_metrics(database, metrics)
        database.commit()
    except Exception:
        database.rollback()
        raise
    return {"rollup": rollup, "public_metrics": metrics}


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.date:
        try:
            target = date.fromisoformat(args.date)
        except ValueError:
            print(f"Invalid --date value: {args.date}", file=sys.stderr)
            return 1
    else:
        target = datetime.now(timezone.utc).date() - timedelta(days=1)

    print(f"=== Analytics Aggregation Started ({target.isoformat()}) ===")
    with Database(SQLiteConnectionPool(args.db, max_connections=1)) as database:
        try:
            init_schema(database)
            result = run(database, target)
        except Exception as exc:
            logger.exception("Analytics aggregation failed")
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    rollup = result["rollup"]
    metrics = result["public_metrics"]
    print(
        f"Daily rollup completed: {rollup['total_active_users']} active users, "
        f"{rollup['new_users']} new users"
    )
    print(
        f"Public metrics updated: {int(metrics['total_learners'])} learners, "
        f"{metrics['course_completion_rate']:.1f}% completion rate"
    )
    print("=== Analytics Aggregation Completed Successfully ===")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
