from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from taskcore.infra.clock import utcnow

from .db import Base


class RecurrenceModel(Base):
    __tablename__ = "recurrences"

    id = Column(String(36), primary_key=True)
    type = Column(String(20), nullable=False)
    # {"interval": 1, "unit": "days", "exclude_weekdays": [0, 6]}
    frequency = Column(JSON, nullable=False)
    anchor_date = Column(DateTime, nullable=True)
    next_due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(36), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    tags = Column(Text, nullable=False, default="")
    type = Column(String(20), nullable=False, default="task")
    status = Column(String(20), nullable=False, default="ready", index=True)
    blocked_reason = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    due_date = Column(DateTime, nullable=True)
    has_due_date = Column(Boolean, nullable=False, default=True)
    started_at = Column(DateTime, nullable=True)
    last_completed_at = Column(DateTime, nullable=True)
    completed_count = Column(Integer, nullable=False, default=0)
    target_frequency = Column(JSON, nullable=True)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    streak_safe_until = Column(DateTime, nullable=True)
    streak_locked = Column(Boolean, nullable=False, default=False)
    nudge_threshold_days = Column(Integer, nullable=True)
    last_nudged_at = Column(DateTime, nullable=True)
    recurrence_id = Column(
        String(36), ForeignKey("recurrences.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version = Column(Integer, nullable=False, default=0)

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}


class CompletionModel(Base):
    __tablename__ = "completions"

    id = Column(String(36), primary_key=True)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_at = Column(DateTime, nullable=False, default=utcnow)
    was_late = Column(Boolean, nullable=False, default=False)
    was_retroactive = Column(Boolean, nullable=False, default=False)
