import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from assignhub.core.timeutils import utcnow
from assignhub.database.base import Base


class NotificationType(str, enum.Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_DELETED = "TASK_DELETED"
    TASK_SUBMISSION = "TASK_SUBMISSION"
    GENERAL = "GENERAL"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=True)
    type = Column(String(40), nullable=False, default=NotificationType.GENERAL.value, index=True)
    # sem ForeignKey: a notificacao sobrevive a exclusao da tarefa
    related_entity_id = Column(Integer, nullable=True, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    related_exists = Column(Boolean, nullable=False, default=True)
    related_deleted_at = Column(DateTime(timezone=True), nullable=True)
