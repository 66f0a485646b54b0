import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.db.models import GoalMetricSample, HealthGoal, ProtocolItem, ProtocolItemCompletion, User
from app.db.session import SessionLocal, configure_database, create_tables


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "goal_progress_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from app.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def create_user(db_session: Session) -> Callable[[], User]:
    def _create_user() -> User:
        user = User(email=f"user_{uuid4().hex[:10]}@test.com")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def create_goal(db_session: Session):
    def _create_goal(
        user_id: int,
        created_at: Optional[datetime] = None,
        title: str = "Sleep 8 hours",
        status: str = "active",
        pillar_category: Optional[str] = "Body",
        check_in_frequency: Optional[str] = None,
        last_check_in_date: Optional[date] = None,
    ) -> HealthGoal:
        goal = HealthGoal(
            user_id=user_id,
            title=title,
            status=status,
            pillar_category=pillar_category,
            check_in_frequency=check_in_frequency,
            last_check_in_date=last_check_in_date,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(goal)
        db_session.commit()
        db_session.refresh(goal)
        return goal

    return _create_goal


@pytest.fixture
def create_item(db_session: Session):
    def _create_item(
        user_id: int, goal_ids: list[int], is_active: bool = True, name: str = "Magnesium at night"
    ) -> ProtocolItem:
        item = ProtocolItem(user_id=user_id, name=name, is_active=is_active, goal_ids_json=json.dumps(goal_ids))
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return _create_item


@pytest.fixture
def seed_completions(db_session: Session):
    def _seed(item_id: int, user_id: int, end: date, days: int) -> list[ProtocolItemCompletion]:
        rows = [
            ProtocolItemCompletion(protocol_item_id=item_id, user_id=user_id, completed_date=end - timedelta(days=offset))
            for offset in range(days)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def seed_samples(db_session: Session):
    def _seed(goal_id: int, user_id: int, values: list[Optional[float]], start: date) -> list[GoalMetricSample]:
        rows = [
            GoalMetricSample(
                goal_id=goal_id,
                user_id=user_id,
                metric_name="hrv_ms",
                metric_value=value,
                metric_unit="ms",
                tracked_date=start + timedelta(days=offset),
            )
            for offset, value in enumerate(values)
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed
