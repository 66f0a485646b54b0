import argparse
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.goal_progress import calculate_goal_progress_breakdown, is_check_in_due
from app.db.models import HealthGoal
from app.services.goal_store import SqlGoalStore


def resolve_db_path(override: Optional[str]) -> Path:
    if override:
        return Path(override).expanduser().resolve()
    env_path = os.getenv("DB_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path("./data/goal_progress.db").resolve()


def collect_progress(db: Session, user_id: Optional[int] = None) -> list[dict[str, Any]]:
    query = db.query(HealthGoal).filter(HealthGoal.status == "active")
    if user_id is not None:
        query = query.filter(HealthGoal.user_id == user_id)
    goals = query.order_by(HealthGoal.user_id.asc(), HealthGoal.id.asc()).all()

    store = SqlGoalStore(db)
    now = datetime.now(timezone.utc)
    rows: list[dict[str, Any]] = []
    for goal in goals:
        breakdown = calculate_goal_progress_breakdown(store, goal.id, goal.user_id, now=now)
        if breakdown is None:
            continue
        rows.append(
            {
                "user_id": goal.user_id,
                "goal_id": goal.id,
                "title": goal.title,
                "progress": breakdown.progress,
                "time": round(breakdown.time_progress, 1),
                "action": round(breakdown.action_progress, 1),
                "outcome": round(breakdown.outcome_progress, 1),
                "days_remaining": breakdown.days_remaining,
                "check_in_due": is_check_in_due(goal, now),
            }
        )
    return rows


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Compute progress for active goals. Read-only; nothing is written back."
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Only score goals owned by this user.",
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="Override SQLite DB path. Defaults to DB_PATH env or app default.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a table.",
    )
    args = parser.parse_args()

    db_path = resolve_db_path(args.db_path)
    if not db_path.exists():
        print(f"DB not found: {db_path}")
        return 1

    from app.db.session import SessionLocal, configure_database

    configure_database(str(db_path))
    db = SessionLocal()
    try:
        rows = collect_progress(db, user_id=args.user_id)
    finally:
        db.close()

    if args.json:
        print(json.dumps(rows, indent=2))
        return 0

    print(f"Target DB: {db_path}")
    print(f"Active goals scored: {len(rows)}")
    for row in rows:
        print(
            f"  user={row['user_id']} goal={row['goal_id']} progress={row['progress']:>3} "
            f"time={row['time']} action={row['action']} outcome={row['outcome']} "
            f"days_remaining={row['days_remaining']} check_in_due={row['check_in_due']}  {row['title']}"
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
