from fastapi import APIRouter, Depends, HTTPException, status

from assignhub.core.auth import get_current_admin, get_current_user
from assignhub.core.errors import TaskCoreError
from assignhub.core.permissions import Actor, is_admin
from assignhub.routes.errors import to_http_exception
from assignhub.schemas.task import (
    MyTaskOut,
    TaskCreate,
    TaskDeletedOut,
    TaskOut,
    TaskProgressOut,
    TaskSubmit,
    TaskUpdate,
)
from assignhub.services.factory import get_coordinator
from assignhub.services.lifecycle import TaskLifecycleCoordinator

router = APIRouter(
    prefix="/tasks",
    tags=["tasks"]
)

@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    task: TaskCreate,
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_admin)
):
    try:
        return coordinator.create(current_user, task)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc

@router.get("/", response_model=list[TaskProgressOut])
def read_tasks(
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_admin)
):
    return coordinator.list_all()

@router.get("/mine", response_model=list[MyTaskOut])
def read_my_tasks(
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_user)
):
    return coordinator.list_for_user(current_user.user_id)

@router.get("/{task_id}", response_model=TaskOut)
def read_task(
    task_id: int,
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_user)
):
    try:
        task = coordinator.get(task_id)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc
    if not is_admin(current_user):
        if all(a.user_id != current_user.user_id for a in task.assignments):
            raise HTTPException(status_code=403, detail="Acesso negado")
        # usuario comum ve apenas a propria entrega
        task.submissions = [s for s in task.submissions if s.user_id == current_user.user_id]
    return task

@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    task: TaskUpdate,
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_admin)
):
    try:
        return coordinator.update(current_user, task_id, task)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc

@router.delete("/{task_id}", response_model=TaskDeletedOut)
def delete_task(
    task_id: int,
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_admin)
):
    try:
        return coordinator.delete(current_user, task_id)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc

@router.post("/{task_id}/submit", response_model=TaskOut)
def submit_task(
    task_id: int,
    payload: TaskSubmit,
    coordinator: TaskLifecycleCoordinator = Depends(get_coordinator),
    current_user: Actor = Depends(get_current_user)
):
    try:
        task = coordinator.submit(current_user, task_id, payload.attachment_ref)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc
    if not is_admin(current_user):
        task.submissions = [s for s in task.submissions if s.user_id == current_user.user_id]
    return task
