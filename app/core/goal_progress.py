"""Goal progress scoring.

Progress is a hybrid of three signals over a fixed improvement cycle:

- 40% time-based (days elapsed / cycle length)
- 40% action-based (protocol check-offs / expected check-offs in the look-back window)
- 20% outcome-based (improvement between first and latest metric sample)

Each data read sits behind its own fault boundary so one failing signal only
zeroes its own term.
"""

import logging
import math
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Protocol

logger = logging.getLogger("uvicorn.error")

GOAL_CYCLE_DAYS = int(os.getenv("GOAL_CYCLE_DAYS", "90"))
GOAL_ACTION_WINDOW_DAYS = int(os.getenv("GOAL_ACTION_WINDOW_DAYS", "30"))
TIME_WEIGHT = 0.4
ACTION_WEIGHT = 0.4
OUTCOME_WEIGHT = 0.2


@dataclass(frozen=True)
class ProgressSettings:
    cycle_days: int = GOAL_CYCLE_DAYS
    action_window_days: int = GOAL_ACTION_WINDOW_DAYS
    time_weight: float = TIME_WEIGHT
    action_weight: float = ACTION_WEIGHT
    outcome_weight: float = OUTCOME_WEIGHT

    def __post_init__(self) -> None:
        if self.cycle_days <= 0:
            raise ValueError("cycle_days must be positive")
        if self.action_window_days <= 0:
            raise ValueError("action_window_days must be positive")


DEFAULT_SETTINGS = ProgressSettings()

CHECK_IN_INTERVAL_DAYS = {
    "daily": 1,
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}
DEFAULT_CHECK_IN_INTERVAL_DAYS = 7


@dataclass(frozen=True)
class GoalRecord:
    id: int
    owner_id: int
    created_at: Optional[datetime]


@dataclass(frozen=True)
class MetricSample:
    value: Optional[float]
    captured_at: date


@dataclass(frozen=True)
class GoalProgressBreakdown:
    goal_id: int
    progress: int
    time_progress: float
    action_progress: float
    outcome_progress: float
    days_elapsed: int
    days_remaining: int


class GoalProgressStore(Protocol):
    def fetch_goal(self, goal_id: int) -> Optional[GoalRecord]:
        ...

    def fetch_active_linked_item_ids(self, goal_id: int) -> list[int]:
        ...

    def fetch_completions(self, item_ids: list[int], user_id: int, since_date: date) -> int:
        ...

    def fetch_metric_samples(self, goal_id: int, user_id: int) -> list[MetricSample]:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def _clamp_score(value: float) -> int:
    # Half-up, so 40.5 scores 41.
    return int(max(0, min(100, math.floor(value + 0.5))))


def days_elapsed_since(created_at: Optional[datetime], now: datetime) -> int:
    if created_at is None:
        return 0
    return max(0, (_to_utc(now) - _to_utc(created_at)).days)


def is_check_in_due(goal: Any, now: datetime) -> bool:
    """Whether an active goal is due a check-in for its cadence.

    Reads `status`, `check_in_frequency` and `last_check_in_date` off the goal.
    A goal that was never checked in is due; an unknown cadence counts as weekly.
    """
    if getattr(goal, "status", "active") != "active":
        return False
    last_check_in = getattr(goal, "last_check_in_date", None)
    if last_check_in is None:
        return True
    if isinstance(last_check_in, datetime):
        last_check_in = _to_utc(last_check_in).date()
    interval = CHECK_IN_INTERVAL_DAYS.get(
        (getattr(goal, "check_in_frequency", None) or "").strip().lower(), DEFAULT_CHECK_IN_INTERVAL_DAYS
    )
    days_since = (_to_utc(now).date() - last_check_in).days
    return days_since >= interval


def compute_time_progress(goal: GoalRecord, now: datetime, settings: ProgressSettings = DEFAULT_SETTINGS) -> float:
    # Fixed cycle for every goal; no per-goal target date.
    if goal.created_at is None:
        return 0.0
    elapsed = days_elapsed_since(goal.created_at, now)
    return _clamp_percent((elapsed / settings.cycle_days) * 100.0)


def compute_action_progress(
    store: GoalProgressStore,
    goal: GoalRecord,
    user_id: int,
    now: datetime,
    settings: ProgressSettings = DEFAULT_SETTINGS,
) -> float:
    try:
        item_ids = store.fetch_active_linked_item_ids(goal.id)
    except Exception:
        logger.exception("goal_progress_items_error goal_id=%s user_id=%s", goal.id, user_id)
        return 0.0
    if not item_ids:
        return 0.0

    since_date = _to_utc(now).date() - timedelta(days=settings.action_window_days)
    try:
        actual = store.fetch_completions(item_ids, user_id, since_date)
    except Exception:
        logger.exception("goal_progress_completions_error goal_id=%s user_id=%s", goal.id, user_id)
        return 0.0

    expected = len(item_ids) * settings.action_window_days
    return _clamp_percent((actual / expected) * 100.0)


def compute_outcome_progress(store: GoalProgressStore, goal: GoalRecord, user_id: int) -> float:
    try:
        samples = store.fetch_metric_samples(goal.id, user_id)
    except Exception:
        logger.exception("goal_progress_metrics_error goal_id=%s user_id=%s", goal.id, user_id)
        return 0.0
    if len(samples) < 2:
        return 0.0

    first = samples[0].value
    latest = samples[-1].value
    # A zero, missing or non-finite baseline has no meaningful relative change.
    if first is None or latest is None or first == 0:
        return 0.0
    if not (math.isfinite(first) and math.isfinite(latest)):
        return 0.0
    improvement = ((latest - first) / abs(first)) * 100.0
    if not math.isfinite(improvement):
        return 0.0
    return _clamp_percent(improvement)


def calculate_goal_progress_breakdown(
    store: GoalProgressStore,
    goal_id: int,
    user_id: int,
    now: Optional[datetime] = None,
    settings: Optional[ProgressSettings] = None,
) -> Optional[GoalProgressBreakdown]:
    """Score a goal and return every component, or None when the goal can't be loaded.

    A goal that belongs to a different user is treated the same as a missing one.
    """
    timestamp = now or _utc_now()
    cfg = settings or DEFAULT_SETTINGS

    try:
        goal = store.fetch_goal(goal_id)
    except Exception:
        logger.exception("goal_progress_goal_error goal_id=%s user_id=%s", goal_id, user_id)
        return None
    if goal is None:
        return None
    if goal.owner_id != user_id:
        logger.warning("goal_progress_owner_mismatch goal_id=%s user_id=%s", goal_id, user_id)
        return None

    time_progress = compute_time_progress(goal, timestamp, cfg)
    action_progress = compute_action_progress(store, goal, user_id, timestamp, cfg)
    outcome_progress = compute_outcome_progress(store, goal, user_id)

    total = (
        (time_progress * cfg.time_weight)
        + (action_progress * cfg.action_weight)
        + (outcome_progress * cfg.outcome_weight)
    )
    elapsed = days_elapsed_since(goal.created_at, timestamp)
    return GoalProgressBreakdown(
        goal_id=goal.id,
        progress=_clamp_score(total),
        time_progress=time_progress,
        action_progress=action_progress,
        outcome_progress=outcome_progress,
        days_elapsed=elapsed,
        days_remaining=max(0, cfg.cycle_days - elapsed),
    )


def calculate_goal_progress(
    store: GoalProgressStore,
    goal_id: int,
    user_id: int,
    now: Optional[datetime] = None,
    settings: Optional[ProgressSettings] = None,
) -> int:
    breakdown = calculate_goal_progress_breakdown(store, goal_id, user_id, now=now, settings=settings)
    if breakdown is None:
        return 0
    return breakdown.progress
