from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    goals: Mapped[list["HealthGoal"]] = relationship(
        "HealthGoal", back_populates="user", cascade="all, delete-orphan"
    )
    protocol_items: Mapped[list["ProtocolItem"]] = relationship(
        "ProtocolItem", back_populates="user", cascade="all, delete-orphan"
    )


class HealthGoal(Base):
    __tablename__ = "user_health_goals"
    __table_args__ = (Index("ix_health_goals_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    pillar_category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    check_in_frequency: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    last_check_in_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # Progress clock start; never rewritten after insert.
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=datetime.utcnow, nullable=True)

    user: Mapped[User] = relationship("User", back_populates="goals")
    metric_samples: Mapped[list["GoalMetricSample"]] = relationship(
        "GoalMetricSample", back_populates="goal", cascade="all, delete-orphan"
    )


class ProtocolItem(Base):
    __tablename__ = "protocol_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    goal_ids_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="protocol_items")
    completions: Mapped[list["ProtocolItemCompletion"]] = relationship(
        "ProtocolItemCompletion", back_populates="protocol_item", cascade="all, delete-orphan"
    )


class ProtocolItemCompletion(Base):
    __tablename__ = "protocol_item_completions"
    __table_args__ = (
        UniqueConstraint("protocol_item_id", "completed_date", name="uq_item_completion_item_date"),
        Index("ix_item_completions_user_date", "user_id", "completed_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    protocol_item_id: Mapped[int] = mapped_column(ForeignKey("protocol_items.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    completed_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    protocol_item: Mapped[ProtocolItem] = relationship("ProtocolItem", back_populates="completions")


class GoalMetricSample(Base):
    __tablename__ = "goal_metric_tracking"
    __table_args__ = (Index("ix_goal_metric_goal_user_date", "goal_id", "user_id", "tracked_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    goal_id: Mapped[int] = mapped_column(ForeignKey("user_health_goals.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    metric_name: Mapped[str] = mapped_column(String(128), nullable=False)
    metric_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    metric_unit: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracked_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    goal: Mapped[HealthGoal] = relationship("HealthGoal", back_populates="metric_samples")
