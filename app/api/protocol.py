import json
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.auth import get_current_user
from app.db.models import HealthGoal, ProtocolItem, User
from app.db.session import get_db
from app.services.goal_store import parse_goal_ids
from app.services.goal_tracking import record_completion

router = APIRouter(prefix="/protocol-items", tags=["protocol"])


class ProtocolItemCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    goal_ids: list[int] = Field(default_factory=list)
    is_active: bool = True


class ProtocolItemResponse(BaseModel):
    id: int
    name: str
    is_active: bool
    goal_ids: list[int]


class CompletionRequest(BaseModel):
    completed_date: Optional[date] = None


class CompletionResponse(BaseModel):
    protocol_item_id: int
    completed_date: date


@router.post("", response_model=ProtocolItemResponse, status_code=status.HTTP_201_CREATED)
def create_protocol_item(
    payload: ProtocolItemCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProtocolItemResponse:
    goal_ids = sorted(set(payload.goal_ids))
    if goal_ids:
        owned = (
            db.query(HealthGoal.id)
            .filter(HealthGoal.user_id == user.id, HealthGoal.id.in_(goal_ids))
            .count()
        )
        if owned != len(goal_ids):
            raise HTTPException(status_code=422, detail="goal_ids must reference your own goals")

    item = ProtocolItem(
        user_id=user.id,
        name=payload.name.strip(),
        is_active=payload.is_active,
        goal_ids_json=json.dumps(goal_ids),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return ProtocolItemResponse(
        id=item.id,
        name=item.name,
        is_active=item.is_active,
        goal_ids=parse_goal_ids(item.goal_ids_json),
    )


@router.post("/{item_id}/completions", response_model=CompletionResponse, status_code=status.HTTP_201_CREATED)
def complete_protocol_item(
    payload: CompletionRequest,
    item_id: int = Path(ge=1),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CompletionResponse:
    completed_date = payload.completed_date or datetime.now(timezone.utc).date()
    if not record_completion(db, user_id=user.id, protocol_item_id=item_id, completed_date=completed_date):
        raise HTTPException(status_code=404, detail="Protocol item not found")
    return CompletionResponse(protocol_item_id=item_id, completed_date=completed_date)
