"""Pydantic schemas for task responses."""

from datetime import datetime
from typing import List, Optional

from taskmanager.schemas.common import CamelModel


class TaskResponse(CamelModel):
    """Schema for task responses from API."""

    id: int
    title: str
    description: Optional[str]
    status: str
    priority: str
    user_id: int
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class TaskListResponse(CamelModel):
    success: bool = True
    data: List[TaskResponse]
    pagination: Pagination


class TaskEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: TaskResponse


class TaskStats(CamelModel):
    total_tasks: int
    pending_tasks: int
    completed_tasks: int
    high_priority_tasks: int
    medium_priority_tasks: int
    low_priority_tasks: int
    completion_rate: int


class TaskStatsResponse(CamelModel):
    success: bool = True
    message: str
    data: TaskStats
