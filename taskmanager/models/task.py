"""Task model"""

import math
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, case, func, select
from sqlalchemy.orm import Session

from taskmanager.core.database import Base, utcnow
from taskmanager.core.errors import NotFoundError, ValidationError
from taskmanager.core.validation import TASK_PRIORITIES, TASK_STATUSES

UPDATABLE_FIELDS = ("title", "description", "status", "priority")

TITLE_MAX_LENGTH = 255
DESCRIPTION_MAX_LENGTH = 1000


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed')", name="ck_tasks_status"),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_tasks_priority"),
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_priority", "priority"),
        Index("idx_tasks_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", server_default="pending")
    priority = Column(String(10), nullable=False, default="medium", server_default="medium")

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    @classmethod
    def create(cls, db: Session, title: str, user_id: int, description: Optional[str] = None,
               status: Optional[str] = None, priority: Optional[str] = None) -> "Task":
        task = cls(
            title=title,
            description=description,
            status=status or "pending",
            priority=priority or "medium",
            user_id=user_id,
        )
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    @classmethod
    def find_by_id(cls, db: Session, task_id: int, user_id: Optional[int] = None) -> Optional["Task"]:
        """Fetch one task, optionally restricted to its owner.

        A task owned by someone else is reported exactly like a missing one,
        so callers cannot learn that the id exists.
        """
        query = db.query(cls).filter(cls.id == task_id)
        if user_id is not None:
            query = query.filter(cls.user_id == user_id)
        return query.first()

    @classmethod
    def find_by_user_id(cls, db: Session, user_id: int, page: int = 1, limit: int = 10,
                        status: Optional[str] = None, priority: Optional[str] = None) -> Dict[str, Any]:
        filters = [cls.user_id == user_id]
        if status:
            filters.append(cls.status == status)
        if priority:
            filters.append(cls.priority == priority)

        total_count = db.scalar(select(func.count()).select_from(cls).where(*filters))

        tasks = (
            db.query(cls)
            .filter(*filters)
            .order_by(cls.created_at.desc(), cls.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
            .all()
        )

        total_pages = math.ceil(total_count / limit)
        return {
            "tasks": tasks,
            "pagination": {
                "page": page,
                "limit": limit,
                "total_count": total_count,
                "total_pages": total_pages,
                "has_next_page": page < total_pages,
                "has_prev_page": page > 1,
            },
        }

    @classmethod
    def update(cls, db: Session, task_id: int, user_id: int, fields: Dict[str, Any]) -> "Task":
        task = cls.find_by_id(db, task_id, user_id)
        if task is None:
            raise NotFoundError("Task")

        changes = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS and value is not None}
        if not changes:
            raise ValidationError("No valid fields to update")

        for field, value in changes.items():
            setattr(task, field, value)
        task.updated_at = utcnow()

        db.commit()
        db.refresh(task)
        return task

    @classmethod
    def delete(cls, db: Session, task_id: int, user_id: int) -> None:
        task = cls.find_by_id(db, task_id, user_id)
        if task is None:
            raise NotFoundError("Task")
        db.delete(task)
        db.commit()

    @classmethod
    def get_stats(cls, db: Session, user_id: int) -> Dict[str, int]:
        row = db.execute(
            select(
                func.count(cls.id).label("total_tasks"),
                func.count(case((cls.status == "pending", 1))).label("pending_tasks"),
                func.count(case((cls.status == "completed", 1))).label("completed_tasks"),
                func.count(case((cls.priority == "high", 1))).label("high_priority_tasks"),
                func.count(case((cls.priority == "medium", 1))).label("medium_priority_tasks"),
                func.count(case((cls.priority == "low", 1))).label("low_priority_tasks"),
            ).where(cls.user_id == user_id)
        ).one()

        stats = {key: int(value or 0) for key, value in row._mapping.items()}
        stats["completion_rate"] = completion_rate(stats["completed_tasks"], stats["total_tasks"])
        return stats

    @staticmethod
    def validate_task_data(title, description=None, priority=None, status=None) -> List[str]:
        errors = []

        if not isinstance(title, str) or not title.strip():
            errors.append("Title is required and must be a non-empty string")
        elif len(title) > TITLE_MAX_LENGTH:
            errors.append("Title must be less than 255 characters")

        if description is not None and not isinstance(description, str):
            errors.append("Description must be a string")
        elif description and len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append("Description must be less than 1000 characters")

        if priority not in TASK_PRIORITIES:
            errors.append("Priority must be one of: low, medium, high")

        if status is not None and status not in TASK_STATUSES:
            errors.append("Status must be one of: pending, completed")

        return errors


def completion_rate(completed: int, total: int) -> int:
    """Percentage of completed tasks, 0 for an empty list."""
    if total <= 0:
        return 0
    # arrondi "half up" en entiers, round() arrondirait au pair
    return (200 * completed + total) // (2 * total)
