import json
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.goal_progress import GoalRecord, MetricSample
from app.db.models import GoalMetricSample, HealthGoal, ProtocolItem, ProtocolItemCompletion


def parse_goal_ids(raw: Optional[str]) -> list[int]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    out: list[int] = []
    for item in parsed:
        try:
            out.append(int(item))
        except (TypeError, ValueError):
            continue
    return out


class SqlGoalStore:
    """Read-only goal progress queries over the application database."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def fetch_goal(self, goal_id: int) -> Optional[GoalRecord]:
        goal = self.db.query(HealthGoal).filter(HealthGoal.id == goal_id).first()
        if goal is None:
            return None
        return GoalRecord(id=goal.id, owner_id=goal.user_id, created_at=goal.created_at)

    def fetch_active_linked_item_ids(self, goal_id: int) -> list[int]:
        items = (
            self.db.query(ProtocolItem)
            .join(HealthGoal, HealthGoal.user_id == ProtocolItem.user_id)
            .filter(HealthGoal.id == goal_id, ProtocolItem.is_active.is_(True))
            .order_by(ProtocolItem.id.asc())
            .all()
        )
        return [item.id for item in items if goal_id in parse_goal_ids(item.goal_ids_json)]

    def fetch_completions(self, item_ids: list[int], user_id: int, since_date: date) -> int:
        if not item_ids:
            return 0
        count = (
            self.db.query(func.count(ProtocolItemCompletion.id))
            .filter(
                ProtocolItemCompletion.protocol_item_id.in_(item_ids),
                ProtocolItemCompletion.user_id == user_id,
                ProtocolItemCompletion.completed_date >= since_date,
            )
            .scalar()
        )
        return int(count or 0)

    def fetch_metric_samples(self, goal_id: int, user_id: int) -> list[MetricSample]:
        rows = (
            self.db.query(GoalMetricSample)
            .filter(GoalMetricSample.goal_id == goal_id, GoalMetricSample.user_id == user_id)
            .order_by(GoalMetricSample.tracked_date.asc(), GoalMetricSample.id.asc())
            .all()
        )
        return [MetricSample(value=row.metric_value, captured_at=row.tracked_date) for row in rows]
