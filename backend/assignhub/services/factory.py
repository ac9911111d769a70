from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import sessionmaker

from assignhub.core.config import NOTIFY_MODE
from assignhub.services.device_tokens import DeviceTokenStore
from assignhub.services.fanout import NotificationFanout
from assignhub.services.lifecycle import TaskLifecycleCoordinator
from assignhub.services.ledger import TaskAssignmentLedger
from assignhub.services.notification_store import NotificationStore
from assignhub.services.push import PushDispatcher, PushProvider, build_push_provider


def build_fanout(session_factory: sessionmaker, provider: Optional[PushProvider] = None) -> NotificationFanout:
    return NotificationFanout(
        session_factory=session_factory,
        store=NotificationStore(),
        tokens=DeviceTokenStore(),
        dispatcher=PushDispatcher(provider or build_push_provider()),
    )


def build_coordinator(
    session_factory: sessionmaker,
    provider: Optional[PushProvider] = None,
    notify_mode: str = NOTIFY_MODE,
) -> TaskLifecycleCoordinator:
    fanout = build_fanout(session_factory, provider)
    return TaskLifecycleCoordinator(
        session_factory=session_factory,
        ledger=TaskAssignmentLedger(),
        store=fanout.store,
        fanout=fanout,
        notify_mode=notify_mode,
    )


@lru_cache(maxsize=1)
def get_coordinator() -> TaskLifecycleCoordinator:
    from assignhub.database.session import SessionLocal

    return build_coordinator(SessionLocal)


def get_fanout() -> NotificationFanout:
    return get_coordinator().fanout
