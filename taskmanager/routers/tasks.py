from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from taskmanager.core.database import get_db
from taskmanager.core.errors import NotFoundError
from taskmanager.core.security import get_current_user
from taskmanager.core.validation import PAGINATION_RULES, TASK_CREATE_RULES, TASK_UPDATE_RULES, validated_body, validated_query
from taskmanager.models.task import Task
from taskmanager.models.user import User
from taskmanager.schemas.common import MessageResponse
from taskmanager.schemas.task import TaskEnvelope, TaskListResponse, TaskResponse, TaskStatsResponse

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=TaskListResponse)
def list_tasks(
    current_user: User = Depends(get_current_user),
    params: dict = Depends(validated_query(PAGINATION_RULES)),
    db: Session = Depends(get_db)
):
    result = Task.find_by_user_id(
        db,
        current_user.id,
        page=params.get("page", 1),
        limit=params.get("limit", 10),
        status=params.get("status"),
        priority=params.get("priority"),
    )
    return {
        "data": [TaskResponse.model_validate(task) for task in result["tasks"]],
        "pagination": result["pagination"],
    }


# avant /{task_id} sinon "stats" serait pris pour un id
@router.get("/stats", response_model=TaskStatsResponse)
def stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {
        "message": "Statistics retrieved successfully",
        "data": Task.get_stats(db, current_user.id),
    }


@router.get("/{task_id}", response_model=TaskEnvelope)
def get_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    # tâche d'un autre utilisateur = 404, jamais 403
    task = Task.find_by_id(db, task_id, current_user.id)
    if not task:
        raise NotFoundError("Task")

    return {"data": TaskResponse.model_validate(task)}


@router.post("", response_model=TaskEnvelope, status_code=status.HTTP_201_CREATED)
def create_task(
    current_user: User = Depends(get_current_user),
    task_data: dict = Depends(validated_body(TASK_CREATE_RULES)),
    db: Session = Depends(get_db)
):
    new_task = Task.create(
        db,
        title=task_data["title"],
        user_id=current_user.id,
        description=task_data.get("description"),
        status=task_data.get("status"),
        priority=task_data.get("priority"),
    )
    return {"message": "Task created successfully", "data": TaskResponse.model_validate(new_task)}


@router.put("/{task_id}", response_model=TaskEnvelope)
def update_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    task_data: dict = Depends(validated_body(TASK_UPDATE_RULES)),
    db: Session = Depends(get_db)
):
    # les chaînes vides sont ignorées, pas appliquées
    update_data = {key: value for key, value in task_data.items() if value != ""}

    task = Task.update(db, task_id, current_user.id, update_data)
    return {"message": "Task updated successfully", "data": TaskResponse.model_validate(task)}


@router.delete("/{task_id}", response_model=MessageResponse, response_model_exclude_none=True)
def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    Task.delete(db, task_id, current_user.id)
    return {"message": "Task deleted successfully"}
