"""
Fan-out de notificacoes: grava primeiro, depois tenta o push.

O historico gravado e a fonte da verdade; o push e melhor esforco. Uma
falha de gravacao vira PersistError. Falhas de resolucao de tokens ou do
provedor de push viram contagens no FanoutResult, nunca excecoes.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from assignhub.core.errors import PersistError
from assignhub.models.notification import NotificationType
from assignhub.services.device_tokens import DeviceTokenStore
from assignhub.services.ledger import existing_user_ids, normalize_user_ids
from assignhub.services.notification_store import NotificationDraft, NotificationStore
from assignhub.services.push import PushDispatcher, PushPayload, build_push_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanoutResult:
    saved: int = 0
    pushed: int = 0
    failed: int = 0

    @property
    def degraded(self) -> bool:
        return self.failed > 0


class NotificationFanout:
    def __init__(
        self,
        session_factory: sessionmaker,
        store: NotificationStore,
        tokens: DeviceTokenStore,
        dispatcher: PushDispatcher,
    ):
        self.session_factory = session_factory
        self.store = store
        self.tokens = tokens
        self.dispatcher = dispatcher

    def send(
        self,
        recipient_ids: Iterable[int],
        title: str,
        message: str,
        type: NotificationType,
        related_entity_id: Optional[int] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> FanoutResult:
        recipients = normalize_user_ids(recipient_ids)
        if not recipients:
            return FanoutResult()

        notification_type = NotificationType(type)
        try:
            with self.session_factory.begin() as db:
                # so usuarios cadastrados recebem historico e push
                known = existing_user_ids(db, recipients)
                drafts = [
                    NotificationDraft(
                        recipient_id=user_id,
                        title=title,
                        message=message,
                        type=notification_type,
                        related_entity_id=related_entity_id,
                    )
                    for user_id in known
                ]
                if drafts:
                    self.store.insert_many(db, drafts)
        except SQLAlchemyError as exc:
            logger.exception("Falha ao gravar notificacoes tipo=%s destinatarios=%s", notification_type.value, len(recipients))
            raise PersistError("Falha ao gravar notificações") from exc
        if len(known) < len(recipients):
            logger.warning(
                "Destinatarios ignorados (usuario inexistente): %s",
                [user_id for user_id in recipients if user_id not in known],
            )
        if not known:
            return FanoutResult()
        recipients = known
        saved = len(drafts)

        try:
            with self.session_factory() as db:
                device_tokens = list(dict.fromkeys(self.tokens.tokens_for_users(db, recipients)))
        except SQLAlchemyError:
            logger.exception("Falha ao resolver tokens de push; notificacoes gravadas sem push")
            return FanoutResult(saved=saved)
        if not device_tokens:
            return FanoutResult(saved=saved)

        payload = PushPayload(
            title=title,
            body=message,
            data=build_push_data(
                {
                    "type": notification_type.value,
                    "relatedTaskId": related_entity_id if related_entity_id is not None else "",
                    **(extra_data or {}),
                }
            ),
        )
        try:
            report = self.dispatcher.deliver(device_tokens, payload)
        except Exception:
            logger.exception("Falha no envio de push (%s tokens)", len(device_tokens))
            return FanoutResult(saved=saved, pushed=0, failed=len(device_tokens))

        if report.unregistered_tokens:
            self._prune(report.unregistered_tokens)

        result = FanoutResult(saved=saved, pushed=report.success_count, failed=report.failure_count)
        if result.degraded:
            logger.warning(
                "Push parcial tipo=%s enviados=%s falhas=%s",
                notification_type.value,
                result.pushed,
                result.failed,
            )
        return result

    def _prune(self, tokens: list[str]) -> None:
        try:
            with self.session_factory.begin() as db:
                removed = self.tokens.prune(db, tokens)
            logger.info("Tokens de push invalidos removidos: %s", removed)
        except SQLAlchemyError:
            logger.exception("Falha ao remover tokens de push invalidos")
