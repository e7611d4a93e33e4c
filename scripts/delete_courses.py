"""Delete published courses from the command line.

Usage:
  python scripts/delete_courses.py 1 2 3 4    # delete specific courses
  python scripts/delete_courses.py --list     # list active courses
  python scripts/delete_courses.py --keep 9   # delete all active courses EXCEPT 9
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import Database, init_schema
from db_pool import SQLiteConnectionPool


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete published courses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("course_ids", nargs="*", help="Course IDs to delete")
    parser.add_argument("--list", action="store_true", help="List active courses and exit")
    parser.add_argument("--keep", type=str, default=None, help="Delete every active course except this ID")
    parser.add_argument(
        "--soft",
        action="store_true",
        help="Mark courses inactive instead of deleting the rows",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=os.getenv("DB_PATH", "data.db"),
        help="Path to the SQLite database (default: $DB_PATH or data.db)",
    )
    return parser


def _to_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def list_courses(database: Database) -> None:
    courses = database.query(
        """
        SELECT course_id, course_name, subject_area, difficulty_level, created_at
        FROM courses
        WHERE is_active = 1
        ORDER BY created_at DESC, course_id DESC
        """
    )
    print("\nPublished Courses:")
    print("=" * 80)
    print(f"{'ID':<5} {'Name':<30} {'Subject':<20} {'Difficulty':<15} Created")
    print("-" * 80)
    for course in courses:
        print(
            f"{course['course_id']:<5d} {(course['course_name'] or '')[:30]:<30} "
            f"{course['subject_area'] or '':<20} {course['difficulty_level'] or '':<15} "
            f"{course['created_at'] or ''}"
        )
    print("=" * 80)
    print(f"Total: {len(courses)} courses\n")


def delete_course(database: Database, course_id: int, *, soft: bool = False) -> bool:
    course = database.query_one(
        "SELECT course_id, course_name FROM courses WHERE course_id = ?",
        (course_id,),
    )
    if course is None:
        print(f"Course ID {course_id} not found.")
        return False

    print(f"Deleting: [{course['course_id']}] {course['course_name']}... ", end="")
    if soft:
        affected = database.execute("UPDATE courses SET is_active = 0 WHERE course_id = ?", (course_id,))
    else:
        affected = database.execute("DELETE FROM courses WHERE course_id = ?", (course_id,))

    if affected > 0:
        print("DELETED")
        return True
    print("FAILED")
    return False


def _confirmed(stdin: TextIO) -> bool:
    print("Are you sure? Type 'yes' to confirm: ", end="", flush=True)
    line = stdin.readline()
    return line.strip().lower() == "yes"


def main(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    stdin = stdin or sys.stdin

    database = Database(SQLiteConnectionPool(args.db, max_connections=1))
    try:
        init_schema(database)

        if args.list:
            list_courses(database)
            return 0

        if args.keep is not None:
            keep_id = _to_int(args.keep)
            if keep_id is None:
                print(f"Invalid course ID to keep: {args.keep}")
                list_courses(database)
                return 0
            print(f"WARNING: This will delete ALL courses EXCEPT course ID {keep_id}")
            if not _confirmed(stdin):
                print("Cancelled.")
                list_courses(database)
                return 0

            rows = database.query(
                "SELECT course_id FROM courses WHERE course_id != ? AND is_active = 1",
                (keep_id,),
            )
            print()
            for row in rows:
                delete_course(database, row["course_id"], soft=args.soft)
            print("\nDeletion complete. Courses remaining:\n")
            list_courses(database)
            return 0

        if not args.course_ids:
            parser.print_help()
            list_courses(database)
            return 0

        course_ids: List[int] = []
        for raw in args.course_ids:
            value = _to_int(raw)
            if value is None:
                print(f"Skipping invalid course ID: {raw}")
                continue
            course_ids.append(value)

        print(f"About to delete {len(course_ids)} course(s)")
        if not _confirmed(stdin):
            print("Cancelled.")
            return 0

        print()
        deleted = sum(1 for course_id in course_ids if delete_course(database, course_id, soft=args.soft))
        print(f"\nDeleted {deleted} course(s).\n")
        list_courses(database)
        return 0
    finally:
        database.close()


if __name__ == "__main__":
    raise SystemExit(main())
