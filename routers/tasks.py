"""
routers/tasks.py
================
GET    /tasks                 — pending and completed tasks for a user_id
GET    /tasks/quick-add       — preset tasks offered as one-click adds
POST   /tasks                 — add a task
PATCH  /tasks/{id}/toggle     — flip completed
DELETE /tasks/completed       — clear a user's completed tasks
DELETE /tasks/{id}            — delete one task
"""
from typing import List

from fastapi import APIRouter, HTTPException, Request

from models.study import Task, TaskCreate, TaskKind, TaskList

router = APIRouter(prefix="/tasks", tags=["Tasks"])

QUICK_ADD_TASKS = [
    {"title": "Review Flashcards", "kind": TaskKind.FLASHCARDS},
    {"title": "Take Quiz",         "kind": TaskKind.QUIZ},
    {"title": "Revise Hard Cards", "kind": TaskKind.REVISE},
    {"title": "Study Session",     "kind": TaskKind.STUDY},
]


@router.get("", response_model=TaskList)
def list_tasks(user_id: str, request: Request):
    tasks = request.app.state.store.list_tasks(user_id)
    return TaskList(
        pending=[t for t in tasks if not t["completed"]],
        completed=[t for t in tasks if t["completed"]],
    )


@router.get("/quick-add")
def quick_add_tasks() -> List[dict]:
    return QUICK_ADD_TASKS


@router.post("", response_model=Task, status_code=201)
def add_task(body: TaskCreate, request: Request):
    title = body.title.strip()
    if not title:
        raise HTTPException(status_code=400, detail="Task title must not be empty")
    return request.app.state.store.add_task(body.user_id, title, body.kind.value)


@router.patch("/{task_id}/toggle", response_model=Task)
def toggle_task(task_id: str, request: Request):
    return request.app.state.store.toggle_task(task_id)


@router.delete("/completed")
def clear_completed(user_id: str, request: Request):
    removed = request.app.state.store.clear_completed_tasks(user_id)
    return {"removed": removed}


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: str, request: Request):
    request.app.state.store.delete_task(task_id)
