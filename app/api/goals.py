import math
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.core.goal_progress import GoalProgressBreakdown, calculate_goal_progress_breakdown, is_check_in_due
from app.db.models import HealthGoal, User
from app.db.session import get_db
from app.services.goal_store import SqlGoalStore
from app.services.goal_tracking import track_goal_metric

router = APIRouter(prefix="/goals", tags=["goals"])


class GoalCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    pillar_category: Optional[str] = Field(default=None, max_length=64)
    check_in_frequency: Optional[str] = Field(default=None, max_length=32)


class GoalItem(BaseModel):
    id: int
    title: str
    pillar_category: Optional[str] = None
    status: str
    check_in_frequency: Optional[str] = None
    last_check_in_date: Optional[date] = None
    created_at: Optional[datetime] = None


class GoalProgressResponse(BaseModel):
    goal_id: int
    progress: int
    time_progress: float
    action_progress: float
    outcome_progress: float
    days_elapsed: int
    days_remaining: int


class GoalProgressSummary(BaseModel):
    id: int
    title: str
    pillar_category: str
    progress: int
    days_remaining: int
    protocol_adherence: int
    check_in_due: bool


class GoalProgressListResponse(BaseModel):
    items: list[GoalProgressSummary]


class MetricTrackRequest(BaseModel):
    metric_name: str = Field(min_length=1, max_length=128)
    metric_value: float
    metric_unit: Optional[str] = Field(default=None, max_length=32)
    notes: Optional[str] = Field(default=None, max_length=1200)
    tracked_date: Optional[date] = None


class MetricTrackResponse(BaseModel):
    goal_id: int
    metric_name: str
    metric_value: float
    tracked: bool


def _to_progress_response(breakdown: GoalProgressBreakdown) -> GoalProgressResponse:
    return GoalProgressResponse(
        goal_id=breakdown.goal_id,
        progress=breakdown.progress,
        time_progress=round(breakdown.time_progress, 2),
        action_progress=round(breakdown.action_progress, 2),
        outcome_progress=round(breakdown.outcome_progress, 2),
        days_elapsed=breakdown.days_elapsed,
        days_remaining=breakdown.days_remaining,
    )


@router.post("", response_model=GoalItem, status_code=status.HTTP_201_CREATED)
def create_goal(
    payload: GoalCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GoalItem:
    goal = HealthGoal(
        user_id=user.id,
        title=payload.title.strip(),
        pillar_category=payload.pillar_category,
        check_in_frequency=payload.check_in_frequency,
        status="active",
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return GoalItem(
        id=goal.id,
        title=goal.title,
        pillar_category=goal.pillar_category,
        status=goal.status,
        check_in_frequency=goal.check_in_frequency,
        last_check_in_date=goal.last_check_in_date,
        created_at=goal.created_at,
    )


@router.get("/progress", response_model=GoalProgressListResponse)
def list_goal_progress(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> GoalProgressListResponse:
    goals = (
        db.query(HealthGoal)
        .filter(HealthGoal.user_id == user.id, HealthGoal.status == "active")
        .order_by(HealthGoal.created_at.asc(), HealthGoal.id.asc())
        .all()
    )
    store = SqlGoalStore(db)
    now = datetime.now(timezone.utc)
    items: list[GoalProgressSummary] = []
    for goal in goals:
        breakdown = calculate_goal_progress_breakdown(store, goal.id, user.id, now=now)
        if breakdown is None:
            continue
        items.append(
            GoalProgressSummary(
                id=goal.id,
                title=goal.title,
                pillar_category=goal.pillar_category or "General",
                progress=breakdown.progress,
                days_remaining=breakdown.days_remaining,
                protocol_adherence=int(round(breakdown.action_progress)),
                check_in_due=is_check_in_due(goal, now),
            )
        )
    return GoalProgressListResponse(items=items)


@router.get("/{goal_id}/progress", response_model=GoalProgressResponse)
def get_goal_progress(
    goal_id: int = Path(ge=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GoalProgressResponse:
    breakdown = calculate_goal_progress_breakdown(SqlGoalStore(db), goal_id, user.id)
    if breakdown is None:
        raise HTTPException(status_code=404, detail="Goal not found")
    return _to_progress_response(breakdown)


@router.post("/{goal_id}/metrics", response_model=MetricTrackResponse, status_code=status.HTTP_201_CREATED)
def create_goal_metric(
    payload: MetricTrackRequest,
    goal_id: int = Path(ge=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MetricTrackResponse:
    if not math.isfinite(payload.metric_value):
        raise HTTPException(status_code=422, detail="metric_value must be a finite number")
    tracked = track_goal_metric(
        db,
        user_id=user.id,
        goal_id=goal_id,
        metric_name=payload.metric_name.strip(),
        metric_value=payload.metric_value,
        metric_unit=payload.metric_unit,
        notes=payload.notes,
        tracked_date=payload.tracked_date,
    )
    if not tracked:
        raise HTTPException(status_code=404, detail="Goal not found")
    return MetricTrackResponse(
        goal_id=goal_id,
        metric_name=payload.metric_name.strip(),
        metric_value=payload.metric_value,
        tracked=True,
    )
