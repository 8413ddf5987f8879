from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from database import get_db
from identity import Caller
from models import TaskType, User
from routers.shared import audit, submission_response, task_response
from schemas import TaskCreate, TaskDetailResponse, TaskListResponse, TaskResponse, TaskStatusStat, TaskUpdate
from security import get_caller, require_admin
from task_service import active_tasks, create_task, delete_task, get_task_with_stats, list_tasks, toggle_task, update_task

router = APIRouter()


@router.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def add_task(
    payload: TaskCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    task = create_task(db, admin.id, payload)
    audit(db, admin, request, "Create task", {"task_id": task.id})
    return task_response(task)


@router.get("/tasks", response_model=TaskListResponse)
def get_tasks(
    type: Optional[TaskType] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "deadline",
    sort_order: str = "asc",
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    tasks, meta, statuses = list_tasks(
        db, caller, task_type=type, is_active=is_active,
        page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    include_status = statuses is not None
    return TaskListResponse(
        tasks=[task_response(t, (statuses or {}).get(t.id), include_status=include_status) for t in tasks],
        pagination=meta,
    )


@router.get("/tasks/active", response_model=TaskListResponse)
def get_active_tasks(caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    tasks, statuses = active_tasks(db, caller)
    include_status = statuses is not None
    return TaskListResponse(
        tasks=[task_response(t, (statuses or {}).get(t.id), include_status=include_status) for t in tasks],
        pagination={
            "current_page": 1,
            "total_pages": 1 if tasks else 0,
            "total": len(tasks),
            "has_next_page": False,
            "has_prev_page": False,
        },
    )


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
def get_task(task_id: int, caller: Caller = Depends(get_caller), db: Session = Depends(get_db)):
    task, stats, own = get_task_with_stats(db, caller, task_id)
    return TaskDetailResponse(
        task=task_response(task),
        stats={key: TaskStatusStat(**value) for key, value in stats.items()},
        user_submission=submission_response(own) if own else None,
    )


@router.put("/tasks/{task_id}", response_model=TaskResponse)
def edit_task(
    task_id: int,
    payload: TaskUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    task = update_task(db, task_id, payload)
    audit(db, admin, request, "Update task", {"task_id": task_id})
    return task_response(task)


@router.patch("/tasks/{task_id}/toggle-status", response_model=TaskResponse)
def toggle_task_status(
    task_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    task = toggle_task(db, task_id)
    audit(db, admin, request, "Toggle task", {"task_id": task_id, "is_active": task.is_active})
    return task_response(task)


@router.delete("/tasks/{task_id}")
def remove_task(task_id: int, request: Request, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    delete_task(db, task_id)
    audit(db, admin, request, "Delete task", {"task_id": task_id})
    return {"message": "Task deleted successfully"}
