"""Print the configuration of student-advisor agents and agents matched by name."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db import Database, init_schema
from db_pool import SQLiteConnectionPool
from schemas import Agent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--pattern",
        type=str,
        default="Hawkeinstein",
        help="Also include agents whose name contains this text (default: Hawkeinstein; empty for advisors only)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=os.getenv("DB_PATH", "data.db"),
        help="Path to the SQLite database (default: $DB_PATH or data.db)",
    )
    return parser


def find_agents(database: Database, pattern: str | None = None) -> list[Agent]:
    if pattern:
        rows = database.query(
            """
            SELECT agent_id, agent_name, temperature, max_tokens, system_prompt, is_student_advisor
            FROM agents
            WHERE agent_name LIKE ? OR is_student_advisor = 1
            ORDER BY agent_id
            """,
            (f"%{pattern}%",),
        )
    else:
        rows = database.query(
            """
            SELECT agent_id, agent_name, temperature, max_tokens, system_prompt, is_student_advisor
            FROM agents
            WHERE is_student_advisor = 1
            ORDER BY agent_id
            """
        )
    return [Agent(**row) for row in rows]


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    with Database(SQLiteConnectionPool(args.db, max_connections=1)) as database:
        init_schema(database)
        agents = find_agents(database, args.pattern)

    for agent in agents:
        print(f"Agent: {agent.agent_name}")
        print(f"Temperature: {agent.temperature}")
        print(f"Max Tokens: {agent.max_tokens}")
        print(f"Prompt Length: {agent.prompt_length} chars")
        print(f"System Prompt:\n{agent.system_prompt}")
        print("-" * 80)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
