from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from assignhub.core.config import NOTIFICATIONS_LIST_LIMIT
from assignhub.core.errors import NotFound
from assignhub.core.timeutils import utcnow
from assignhub.models.notification import Notification, NotificationType


@dataclass(frozen=True)
class NotificationDraft:
    recipient_id: int
    title: str
    message: str
    type: NotificationType
    related_entity_id: Optional[int] = None


class NotificationStore:
    """Persistencia das notificacoes. Nao faz commit; a sessao e do chamador."""

    def insert_many(self, db: Session, drafts: Iterable[NotificationDraft]) -> list[Notification]:
        records = [
            Notification(
                recipient_id=draft.recipient_id,
                title=draft.title,
                message=draft.message,
                type=NotificationType(draft.type).value,
                related_entity_id=draft.related_entity_id,
                is_read=False,
                related_exists=True,
            )
            for draft in drafts
        ]
        db.add_all(records)
        db.flush()
        return records

    def find_for_user(self, db: Session, user_id: int, limit: int = NOTIFICATIONS_LIST_LIMIT) -> list[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.recipient_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(db.execute(stmt).scalars().all())

    def count_unread(self, db: Session, user_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
        )
        return int(db.scalar(stmt) or 0)

    def mark_read(self, db: Session, notification_id: int, user_id: int) -> Notification:
        notification = db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == user_id,
            )
        ).scalar_one_or_none()
        if not notification:
            raise NotFound("Notificação não encontrada")
        notification.is_read = True
        db.flush()
        return notification

    def mark_all_read(self, db: Session, user_id: int) -> int:
        result = db.execute(
            update(Notification)
            .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def mark_related_deleted(
        self,
        db: Session,
        related_entity_id: int,
        deleted_at: Optional[datetime] = None,
    ) -> int:
        # so toca registros ainda ativos: o tombstone nao e reescrito
        result = db.execute(
            update(Notification)
            .where(
                Notification.related_entity_id == related_entity_id,
                Notification.related_exists.is_(True),
            )
            .values(related_exists=False, related_deleted_at=deleted_at or utcnow())
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    def delete_by_related(self, db: Session, related_entity_id: int) -> int:
        result = db.execute(
            delete(Notification)
            .where(Notification.related_entity_id == related_entity_id)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)
