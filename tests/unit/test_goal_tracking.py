import math
from datetime import date

from app.db.models import GoalMetricSample, ProtocolItemCompletion
from app.services import goal_tracking
from app.services.goal_tracking import record_completion, track_goal_metric


def test_track_goal_metric_appends_sample(create_user, create_goal, db_session) -> None:
    user = create_user()
    goal = create_goal(user.id)

    ok = track_goal_metric(db_session, user.id, goal.id, "resting_hr", 58, metric_unit="bpm", notes="after walk")
    assert ok is True
    rows = db_session.query(GoalMetricSample).filter(GoalMetricSample.goal_id == goal.id).all()
    assert len(rows) == 1
    assert rows[0].metric_value == 58.0
    assert rows[0].metric_unit == "bpm"
    assert rows[0].tracked_date is not None


def test_track_goal_metric_rejects_foreign_goal(create_user, create_goal, db_session) -> None:
    owner = create_user()
    intruder = create_user()
    goal = create_goal(owner.id)

    assert track_goal_metric(db_session, intruder.id, goal.id, "weight_kg", 80.0) is False
    assert db_session.query(GoalMetricSample).filter(GoalMetricSample.goal_id == goal.id).count() == 0


def test_record_completion_is_idempotent_per_day(create_user, create_goal, create_item, db_session) -> None:
    user = create_user()
    goal = create_goal(user.id)
    item = create_item(user.id, [goal.id])
    day = date(2026, 2, 14)

    assert record_completion(db_session, user.id, item.id, completed_date=day) is True
    assert record_completion(db_session, user.id, item.id, completed_date=day) is True
    count = (
        db_session.query(ProtocolItemCompletion)
        .filter(ProtocolItemCompletion.protocol_item_id == item.id)
        .count()
    )
    assert count == 1


def test_record_completion_rejects_foreign_item(create_user, create_goal, create_item, db_session) -> None:
    owner = create_user()
    intruder = create_user()
    item = create_item(owner.id, [create_goal(owner.id).id])

    assert record_completion(db_session, intruder.id, item.id) is False


def test_track_goal_metric_rejects_non_finite_values(create_user, create_goal, db_session) -> None:
    user = create_user()
    goal = create_goal(user.id)

    assert track_goal_metric(db_session, user.id, goal.id, "hrv_ms", math.inf) is False
    assert track_goal_metric(db_session, user.id, goal.id, "hrv_ms", math.nan) is False
    assert db_session.query(GoalMetricSample).filter(GoalMetricSample.goal_id == goal.id).count() == 0


def test_track_goal_metric_marks_latest_check_in(create_user, create_goal, db_session) -> None:
    user = create_user()
    goal = create_goal(user.id)

    assert track_goal_metric(db_session, user.id, goal.id, "weight_kg", 81.0, tracked_date=date(2026, 2, 10)) is True
    assert track_goal_metric(db_session, user.id, goal.id, "weight_kg", 82.0, tracked_date=date(2026, 2, 1)) is True
    db_session.refresh(goal)
    assert goal.last_check_in_date == date(2026, 2, 10)


def test_record_completion_treats_lost_insert_race_as_done(
    create_user, create_goal, create_item, seed_completions, db_session, monkeypatch
) -> None:
    user = create_user()
    item = create_item(user.id, [create_goal(user.id).id])
    day = date(2026, 2, 20)
    seed_completions(item.id, user.id, end=day, days=1)
    # The pre-insert lookup misses the row a concurrent request already stored.
    monkeypatch.setattr(goal_tracking, "_find_completion", lambda db, item_id, completed: None)

    assert record_completion(db_session, user.id, item.id, completed_date=day) is True
    count = (
        db_session.query(ProtocolItemCompletion)
        .filter(ProtocolItemCompletion.protocol_item_id == item.id)
        .count()
    )
    assert count == 1
