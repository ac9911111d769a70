from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignhub.core.auth import get_current_admin, get_current_user
from assignhub.core.errors import TaskCoreError
from assignhub.core.permissions import Actor
from assignhub.database.deps import get_db
from assignhub.models.notification import NotificationType
from assignhub.routes.errors import to_http_exception
from assignhub.schemas.notification import (
    BulkUpdateOut,
    FanoutOut,
    NotificationListOut,
    NotificationOut,
    NotificationSend,
)
from assignhub.services.factory import get_fanout
from assignhub.services.fanout import NotificationFanout
from assignhub.services.notification_store import NotificationStore

router = APIRouter(prefix="/notifications", tags=["Notifications"])
store = NotificationStore()


@router.get("/", response_model=NotificationListOut)
def list_notifications(
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_user),
):
    notifications = store.find_for_user(db, current_user.user_id)
    return NotificationListOut(
        notifications=[NotificationOut.model_validate(item) for item in notifications],
        unread_count=store.count_unread(db, current_user.user_id),
    )


@router.patch("/mark-all-read", response_model=BulkUpdateOut)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_user),
):
    count = store.mark_all_read(db, current_user.user_id)
    db.commit()
    return BulkUpdateOut(detail="Todas as notificações marcadas como lidas", count=count)


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_user),
):
    try:
        notification = store.mark_read(db, notification_id, current_user.user_id)
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc
    db.commit()
    db.refresh(notification)
    return notification


@router.patch("/related/{task_id}/mark-deleted", response_model=BulkUpdateOut)
def mark_related_deleted(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_admin),
):
    count = store.mark_related_deleted(db, task_id)
    db.commit()
    return BulkUpdateOut(detail="Notificações relacionadas marcadas como excluídas", count=count)


@router.delete("/related/{task_id}", response_model=BulkUpdateOut)
def delete_related(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: Actor = Depends(get_current_admin),
):
    count = store.delete_by_related(db, task_id)
    db.commit()
    return BulkUpdateOut(detail="Notificações relacionadas excluídas", count=count)


@router.post("/send", response_model=FanoutOut)
def send_notification(
    payload: NotificationSend,
    fanout: NotificationFanout = Depends(get_fanout),
    current_user: Actor = Depends(get_current_admin),
):
    try:
        notification_type = NotificationType(payload.type)
    except ValueError:
        notification_type = NotificationType.GENERAL
    try:
        result = fanout.send(
            payload.user_ids,
            title=payload.title,
            message=payload.message,
            type=notification_type,
            related_entity_id=payload.related_entity_id,
        )
    except TaskCoreError as exc:
        raise to_http_exception(exc) from exc
    return FanoutOut(saved=result.saved, pushed=result.pushed, failed=result.failed, degraded=result.degraded)
