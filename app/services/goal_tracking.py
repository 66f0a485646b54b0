import logging
import math
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import GoalMetricSample, HealthGoal, ProtocolItem, ProtocolItemCompletion

logger = logging.getLogger("uvicorn.error")


def _today() -> date:
    return datetime.now(timezone.utc).date()


def track_goal_metric(
    db: Session,
    user_id: int,
    goal_id: int,
    metric_name: str,
    metric_value: float,
    metric_unit: Optional[str] = None,
    notes: Optional[str] = None,
    tracked_date: Optional[date] = None,
) -> bool:
    """Append a metric sample to a goal the user owns and mark the goal checked in.

    Returns False instead of raising.
    """
    goal = db.query(HealthGoal).filter(HealthGoal.id == goal_id, HealthGoal.user_id == user_id).first()
    if goal is None:
        logger.warning("goal_metric_goal_not_found goal_id=%s user_id=%s", goal_id, user_id)
        return False
    if not math.isfinite(metric_value):
        logger.warning("goal_metric_non_finite goal_id=%s user_id=%s", goal_id, user_id)
        return False

    day = tracked_date or _today()
    sample = GoalMetricSample(
        user_id=user_id,
        goal_id=goal_id,
        metric_name=metric_name,
        metric_value=float(metric_value),
        metric_unit=metric_unit,
        notes=notes,
        tracked_date=day,
    )
    # Logging a measurement counts as a check-in for the goal.
    if goal.last_check_in_date is None or goal.last_check_in_date < day:
        goal.last_check_in_date = day
    try:
        db.add(sample)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("goal_metric_track_error goal_id=%s user_id=%s", goal_id, user_id)
        return False
    return True


def _find_completion(db: Session, protocol_item_id: int, day: date) -> Optional[ProtocolItemCompletion]:
    return (
        db.query(ProtocolItemCompletion)
        .filter(
            ProtocolItemCompletion.protocol_item_id == protocol_item_id,
            ProtocolItemCompletion.completed_date == day,
        )
        .first()
    )


def record_completion(
    db: Session,
    user_id: int,
    protocol_item_id: int,
    completed_date: Optional[date] = None,
) -> bool:
    item = (
        db.query(ProtocolItem)
        .filter(ProtocolItem.id == protocol_item_id, ProtocolItem.user_id == user_id)
        .first()
    )
    if item is None:
        logger.warning("protocol_completion_item_not_found item_id=%s user_id=%s", protocol_item_id, user_id)
        return False

    day = completed_date or _today()
    if _find_completion(db, protocol_item_id, day) is not None:
        return True

    try:
        db.add(ProtocolItemCompletion(protocol_item_id=protocol_item_id, user_id=user_id, completed_date=day))
        db.commit()
    except IntegrityError:
        # Another request stored the same (item, date) first.
        db.rollback()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("protocol_completion_error item_id=%s user_id=%s", protocol_item_id, user_id)
        return False
    return True
