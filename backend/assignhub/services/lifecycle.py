"""
Coordenador do ciclo de vida das tarefas.

Cada operacao tem duas fases explicitas:

1. fase transacional: muta o ledger dentro de ``session_factory.begin()``;
   o commit e a fronteira de durabilidade e o resultado (DTO) e montado
   antes dele;
2. fase de notificacao: roda somente depois do commit. Qualquer falha e
   registrada no log e nunca desfaz nem falha a operacao.

NOTIFY_MODE=background dispara a fase 2 numa thread daemon para que um
provedor de push lento nao segure a resposta.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from assignhub.core.config import ADMIN_ROLE, NOTIFY_MODE
from assignhub.core.errors import PersistError
from assignhub.core.permissions import Actor
from assignhub.core.timeutils import utcnow
from assignhub.models.notification import NotificationType
from assignhub.models.user import User
from assignhub.schemas.task import (
    AssignmentOut,
    MyTaskOut,
    SubmissionOut,
    TaskCreate,
    TaskDeletedOut,
    TaskOut,
    TaskProgressOut,
    TaskUpdate,
)
from assignhub.services.fanout import FanoutResult, NotificationFanout
from assignhub.services.ledger import TaskAssignmentLedger, compute_progress
from assignhub.services.notification_store import NotificationStore

logger = logging.getLogger(__name__)


def payload_data(payload) -> dict:
    if hasattr(payload, "model_dump"):
        return payload.model_dump(exclude_unset=True)
    return payload.dict(exclude_unset=True)


class TaskLifecycleCoordinator:
    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: TaskAssignmentLedger,
        store: NotificationStore,
        fanout: NotificationFanout,
        notify_mode: str = NOTIFY_MODE,
    ):
        self.session_factory = session_factory
        self.ledger = ledger
        self.store = store
        self.fanout = fanout
        self.notify_mode = str(notify_mode or "sync").strip().lower()

    # ---- fase transacional ----

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self.session_factory.begin() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.exception("Transacao de tarefa abortada")
            raise PersistError("Falha ao gravar a tarefa") from exc

    # ---- fase de notificacao ----

    def _notify(self, label: str, job: Callable[[], FanoutResult]) -> None:
        if self.notify_mode == "background":
            threading.Thread(
                target=self._run_guarded,
                args=(label, job),
                daemon=True,
                name=f"notify-{label}",
            ).start()
            return
        self._run_guarded(label, job)

    @staticmethod
    def _run_guarded(label: str, job: Callable[[], FanoutResult]) -> Optional[FanoutResult]:
        try:
            result = job()
        except Exception:
            logger.exception("Falha ao enviar notificacoes (%s); operacao ja confirmada", label)
            return None
        logger.info(
            "Notificacoes %s: gravadas=%s push=%s falhas=%s",
            label,
            result.saved,
            result.pushed,
            result.failed,
        )
        return result

    def _admin_ids(self) -> list[int]:
        with self.session_factory() as db:
            return list(db.execute(select(User.id).where(User.role == ADMIN_ROLE).order_by(User.id)).scalars())

    def _display_name(self, actor: Actor) -> str:
        if actor.name:
            return actor.name
        with self.session_factory() as db:
            user = db.get(User, actor.user_id)
            return user.name if user else f"Usuário {actor.user_id}"

    # ---- operacoes ----

    def create(self, actor: Optional[Actor], command: TaskCreate) -> TaskOut:
        with self._transaction() as db:
            task = self.ledger.create_task(db, command, created_by=actor.user_id if actor else None)
            out = TaskOut.model_validate(task)

        recipients = [assignment.user_id for assignment in out.assignments]
        if recipients:
            self._notify(
                "task_created",
                lambda: self.fanout.send(
                    recipients,
                    title="Nova tarefa atribuída",
                    message=f'A tarefa "{out.title}" foi atribuída a você.',
                    type=NotificationType.TASK_CREATED,
                    related_entity_id=out.id,
                ),
            )
        return out

    def update(self, actor: Optional[Actor], task_id: int, command: TaskUpdate) -> TaskOut:
        data = payload_data(command)
        assignee_ids = data.pop("assignee_ids", None)

        with self._transaction() as db:
            task = self.ledger.update_fields(db, task_id, data)
            added: list[int] = []
            if assignee_ids is not None:
                task, added = self.ledger.merge_assignees(db, task_id, assignee_ids)
            out = TaskOut.model_validate(task)

        # responsaveis que ja estavam na tarefa nao sao notificados de novo
        if added:
            self._notify(
                "task_assigned",
                lambda: self.fanout.send(
                    added,
                    title="Nova tarefa atribuída",
                    message=f'Você foi atribuído à tarefa "{out.title}".',
                    type=NotificationType.TASK_ASSIGNED,
                    related_entity_id=out.id,
                ),
            )
        return out

    def delete(self, actor: Optional[Actor], task_id: int) -> TaskDeletedOut:
        with self._transaction() as db:
            task, assignee_ids = self.ledger.delete_task(db, task_id)
            tombstoned = self.store.mark_related_deleted(db, task_id, deleted_at=utcnow())
            out = TaskDeletedOut(
                id=task.id,
                title=task.title,
                assignee_ids=assignee_ids,
                notifications_tombstoned=tombstoned,
            )

        if out.assignee_ids:
            self._notify(
                "task_deleted",
                lambda: self.fanout.send(
                    out.assignee_ids,
                    title="Tarefa excluída",
                    message=f'A tarefa "{out.title}" foi excluída por um administrador.',
                    type=NotificationType.TASK_DELETED,
                    related_entity_id=out.id,
                ),
            )
        return out

    def submit(self, actor: Actor, task_id: int, attachment_ref: Optional[str] = None) -> TaskOut:
        with self._transaction() as db:
            task = self.ledger.record_submission(db, task_id, actor.user_id, attachment_ref)
            out = TaskOut.model_validate(task)

        def notify_admins() -> FanoutResult:
            name = self._display_name(actor)
            return self.fanout.send(
                self._admin_ids(),
                title="Entrega de tarefa",
                message=f'{name} enviou a entrega da tarefa "{out.title}".',
                type=NotificationType.TASK_SUBMISSION,
                related_entity_id=out.id,
                extra_data={"submittedBy": actor.user_id},
            )

        self._notify("task_submission", notify_admins)
        return out

    # ---- leituras ----

    def get(self, task_id: int) -> TaskOut:
        with self.session_factory() as db:
            return TaskOut.model_validate(self.ledger.get(db, task_id))

    def list_all(self, now: Optional[datetime] = None) -> list[TaskProgressOut]:
        now = now or utcnow()
        result = []
        with self.session_factory() as db:
            for task in self.ledger.list_all(db):
                progress = compute_progress(task, now)
                result.append(
                    TaskProgressOut(
                        **TaskOut.model_validate(task).model_dump(),
                        total_assigned=progress.total_assigned,
                        completed_count=progress.completed_count,
                        progress_percent=progress.progress_percent,
                        status=progress.status.value,
                        is_overdue=progress.is_overdue,
                    )
                )
        return result

    def list_for_user(self, user_id: int) -> list[MyTaskOut]:
        result = []
        with self.session_factory() as db:
            for task, assignment, submission in self.ledger.list_for_user(db, user_id):
                base = TaskOut.model_validate(task).model_dump(exclude={"assignments", "submissions"})
                result.append(
                    MyTaskOut(
                        **base,
                        my_assignment=AssignmentOut.model_validate(assignment),
                        my_submission=SubmissionOut.model_validate(submission) if submission else None,
                    )
                )
        return result
