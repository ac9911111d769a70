"""
Ledger de atribuicoes de tarefas.

Cada tarefa guarda um registro de atribuicao por usuario (concluido ou nao)
e no maximo uma entrega por usuario. Todas as operacoes recebem a sessao do
chamador e nunca fazem commit: a fronteira da transacao pertence ao
coordenador do ciclo de vida.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from assignhub.core.errors import InvalidSpec, NotAssigned, NotFound
from assignhub.core.timeutils import as_utc, utcnow
from assignhub.models.assignment import TaskAssignment
from assignhub.models.submission import TaskSubmission
from assignhub.models.task import Task
from assignhub.models.user import User
from assignhub.schemas.task import TaskCreate

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "deadline", "attachment_ref")


class TaskStatus(str, enum.Enum):
    UNASSIGNED = "Unassigned"
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


@dataclass(frozen=True)
class TaskProgress:
    total_assigned: int
    completed_count: int
    progress_percent: int
    status: TaskStatus
    is_overdue: bool


def normalize_user_ids(values: Optional[Iterable[int]]) -> list[int]:
    result: list[int] = []
    seen: set[int] = set()
    for value in values or []:
        if value is None:
            continue
        user_id = int(value)
        if user_id in seen:
            continue
        seen.add(user_id)
        result.append(user_id)
    return result


def existing_user_ids(db: Session, user_ids: Iterable[int]) -> list[int]:
    """Filtra ``user_ids`` (ja normalizados) aos usuarios cadastrados, mantendo a ordem."""
    ids = list(user_ids)
    if not ids:
        return []
    found = set(db.execute(select(User.id).where(User.id.in_(ids))).scalars())
    return [user_id for user_id in ids if user_id in found]


def require_users(db: Session, user_ids: list[int]) -> None:
    known = set(existing_user_ids(db, user_ids))
    missing = [user_id for user_id in user_ids if user_id not in known]
    if missing:
        raise NotFound("Usuário não encontrado: " + ", ".join(str(user_id) for user_id in missing))


def normalize_title(value: Optional[str]) -> str:
    title = str(value or "").strip()
    if not title:
        raise InvalidSpec("Titulo da tarefa e obrigatorio")
    return title


def progress_percent(completed_count: int, total_assigned: int) -> int:
    if total_assigned <= 0:
        return 0
    # arredondamento "half up" em aritmetica inteira
    return (200 * completed_count + total_assigned) // (2 * total_assigned)


def classify_status(completed_count: int, total_assigned: int) -> TaskStatus:
    if total_assigned == 0:
        return TaskStatus.UNASSIGNED
    if completed_count == 0:
        return TaskStatus.NOT_STARTED
    if completed_count < total_assigned:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.COMPLETED


def compute_progress(task: Task, now: Optional[datetime] = None) -> TaskProgress:
    assignments = list(task.assignments or [])
    total = len(assignments)
    completed = sum(1 for assignment in assignments if assignment.completed)
    deadline = as_utc(task.deadline)
    reference = as_utc(now) or utcnow()
    return TaskProgress(
        total_assigned=total,
        completed_count=completed,
        progress_percent=progress_percent(completed, total),
        status=classify_status(completed, total),
        is_overdue=deadline is not None and deadline < reference and completed < total,
    )


class TaskAssignmentLedger:
    """Estado por responsavel de cada tarefa (atribuida -> entregue -> concluida)."""

    def _lock(self, db: Session, task_id: int) -> Task:
        stmt = (
            select(Task)
            .where(Task.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        task = db.execute(stmt).scalar_one_or_none()
        if not task:
            raise NotFound("Tarefa não encontrada")
        return task

    @staticmethod
    def _refresh_completion(task: Task) -> None:
        assignments = list(task.assignments or [])
        task.completed = bool(assignments) and all(a.completed for a in assignments)

    def create_task(self, db: Session, command: TaskCreate, created_by: Optional[int] = None) -> Task:
        task = Task(
            title=normalize_title(command.title),
            description=command.description,
            deadline=command.deadline,
            attachment_ref=command.attachment_ref,
            created_by=created_by,
            completed=False,
        )
        assignee_ids = normalize_user_ids(command.assignee_ids)
        require_users(db, assignee_ids)
        for user_id in assignee_ids:
            task.assignments.append(TaskAssignment(user_id=user_id, completed=False))
        db.add(task)
        db.flush()
        logger.info("Tarefa criada id=%s responsaveis=%s", task.id, len(task.assignments))
        return task

    def update_fields(self, db: Session, task_id: int, fields: dict) -> Task:
        task = self._lock(db, task_id)
        for key in UPDATABLE_FIELDS:
            if key not in fields:
                continue
            value = fields[key]
            if key == "title":
                value = normalize_title(value)
            setattr(task, key, value)
        db.flush()
        return task

    def merge_assignees(self, db: Session, task_id: int, new_recipient_ids: Iterable[int]) -> tuple[Task, list[int]]:
        task = self._lock(db, task_id)
        present = {assignment.user_id for assignment in task.assignments}
        added = [user_id for user_id in normalize_user_ids(new_recipient_ids) if user_id not in present]
        require_users(db, added)
        for user_id in added:
            task.assignments.append(TaskAssignment(user_id=user_id, completed=False))
        self._refresh_completion(task)
        db.flush()
        return task, added

    def record_submission(
        self,
        db: Session,
        task_id: int,
        user_id: int,
        attachment_ref: Optional[str] = None,
    ) -> Task:
        task = self._lock(db, task_id)
        now = utcnow()
        # escrita condicional: completed_at so e carimbado na primeira entrega.
        # No SQLite e este UPDATE que toma o lock de escrita.
        db.execute(
            update(TaskAssignment)
            .where(
                TaskAssignment.task_id == task_id,
                TaskAssignment.user_id == user_id,
                TaskAssignment.completed.is_(False),
            )
            .values(completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        # a tarefa pode ter sido excluida entre a leitura e o lock
        if db.execute(select(Task.id).where(Task.id == task_id)).scalar_one_or_none() is None:
            raise NotFound("Tarefa não encontrada")
        assignment = db.execute(
            select(TaskAssignment.id).where(
                TaskAssignment.task_id == task_id,
                TaskAssignment.user_id == user_id,
            )
        ).scalar_one_or_none()
        if assignment is None:
            raise NotAssigned("Você não está atribuído a esta tarefa")

        submission = db.execute(
            select(TaskSubmission).where(
                TaskSubmission.task_id == task_id,
                TaskSubmission.user_id == user_id,
            )
        ).scalar_one_or_none()
        if submission:
            if attachment_ref:
                submission.attachment_ref = attachment_ref
            submission.submitted_at = now
        else:
            db.add(
                TaskSubmission(
                    task_id=task_id,
                    user_id=user_id,
                    attachment_ref=attachment_ref,
                    submitted_at=now,
                )
            )
        db.flush()

        total = db.scalar(
            select(func.count()).select_from(TaskAssignment).where(TaskAssignment.task_id == task_id)
        )
        pending = db.scalar(
            select(func.count())
            .select_from(TaskAssignment)
            .where(TaskAssignment.task_id == task_id, TaskAssignment.completed.is_(False))
        )
        completed = bool(total) and pending == 0
        task.completed = completed
        db.flush()
        # recarrega atribuicoes e entregas gravadas por outras transacoes
        db.expire_all()
        logger.info("Entrega registrada tarefa=%s usuario=%s concluida=%s", task_id, user_id, completed)
        return task

    def delete_task(self, db: Session, task_id: int) -> tuple[Task, list[int]]:
        task = self._lock(db, task_id)
        assignee_ids = [assignment.user_id for assignment in task.assignments]
        db.delete(task)
        db.flush()
        return task, assignee_ids

    def get(self, db: Session, task_id: int) -> Task:
        task = db.get(Task, task_id)
        if not task:
            raise NotFound("Tarefa não encontrada")
        return task

    def list_all(self, db: Session) -> list[Task]:
        stmt = select(Task).order_by(Task.deadline.asc().nulls_last(), Task.id.desc())
        return list(db.execute(stmt).scalars().all())

    def list_for_user(
        self, db: Session, user_id: int
    ) -> list[tuple[Task, TaskAssignment, Optional[TaskSubmission]]]:
        rows = db.execute(
            select(Task, TaskAssignment)
            .join(TaskAssignment, TaskAssignment.task_id == Task.id)
            .where(TaskAssignment.user_id == user_id)
            .order_by(Task.deadline.asc().nulls_last(), Task.id.desc())
        ).all()
        result = []
        for task, assignment in rows:
            submission = next((s for s in task.submissions if s.user_id == user_id), None)
            result.append((task, assignment, submission))
        return result
