import pytest
from sqlalchemy.exc import OperationalError

from assignhub.core.errors import PersistError
from assignhub.models.device_token import DeviceToken
from assignhub.models.notification import Notification, NotificationType
from assignhub.services.device_tokens import DeviceTokenStore
from assignhub.services.factory import build_fanout
from assignhub.services.notification_store import NotificationStore
from .fakes import RecordingPushProvider

store = NotificationStore()
device_tokens = DeviceTokenStore()


def register_tokens(session_factory, user_id, *tokens):
    with session_factory.begin() as db:
        for token in tokens:
            device_tokens.register(db, user_id, token)


def send(fanout, recipients, **kwargs):
    return fanout.send(
        recipients,
        title=kwargs.pop("title", "Nova tarefa"),
        message=kwargs.pop("message", "Você recebeu uma tarefa."),
        type=kwargs.pop("type", NotificationType.TASK_CREATED),
        related_entity_id=kwargs.pop("related_entity_id", 7),
        **kwargs,
    )


def count_notifications(session_factory):
    with session_factory() as db:
        return db.query(Notification).count()


def test_empty_recipients_have_no_side_effects(session_factory, push_provider):
    fanout = build_fanout(session_factory, push_provider)

    result = send(fanout, [])

    assert (result.saved, result.pushed, result.failed) == (0, 0, 0)
    assert count_notifications(session_factory) == 0
    assert push_provider.calls == []


def test_recipients_are_deduplicated_and_saved_without_tokens(session_factory, push_provider, make_user):
    first = make_user("Ana")
    second = make_user("Bruno")
    fanout = build_fanout(session_factory, push_provider)

    result = send(fanout, [first.id, second.id, first.id])

    assert (result.saved, result.pushed, result.failed) == (2, 0, 0)
    assert result.degraded is False
    assert push_provider.calls == []
    with session_factory() as db:
        assert len(store.find_for_user(db, first.id)) == 1
        assert len(store.find_for_user(db, second.id)) == 1


def test_push_payload_carries_type_and_related_task(session_factory, push_provider, make_user):
    user = make_user("Ana")
    register_tokens(session_factory, user.id, "tok-ana-1", "tok-ana-2")
    fanout = build_fanout(session_factory, push_provider)

    result = send(fanout, [user.id], extra_data={"submittedBy": 3})

    assert (result.saved, result.pushed, result.failed) == (1, 2, 0)
    [(tokens, payload)] = push_provider.calls
    assert tokens == ["tok-ana-1", "tok-ana-2"]
    assert payload.title == "Nova tarefa"
    assert payload.data == {"type": "TASK_CREATED", "relatedTaskId": "7", "submittedBy": "3"}


def test_provider_failure_is_converted_to_counts(session_factory, make_user):
    first = make_user("Ana")
    second = make_user("Bruno")
    register_tokens(session_factory, first.id, "tok-1")
    register_tokens(session_factory, second.id, "tok-2", "tok-3")
    provider = RecordingPushProvider(raise_error=RuntimeError("fcm fora do ar"))
    fanout = build_fanout(session_factory, provider)

    result = send(fanout, [first.id, second.id])

    assert (result.saved, result.pushed, result.failed) == (2, 0, 3)
    assert result.degraded is True
    with session_factory() as db:
        assert len(store.find_for_user(db, first.id)) == 1
        assert len(store.find_for_user(db, second.id)) == 1


def test_partial_delivery_prunes_unregistered_tokens(session_factory, make_user):
    user = make_user("Ana")
    register_tokens(session_factory, user.id, "tok-ok", "tok-bad", "tok-gone")
    provider = RecordingPushProvider(failing_tokens={"tok-bad"}, unregistered_tokens={"tok-gone"})
    fanout = build_fanout(session_factory, provider)

    result = send(fanout, [user.id])

    assert (result.saved, result.pushed, result.failed) == (1, 1, 2)
    with session_factory() as db:
        remaining = sorted(t.token for t in db.query(DeviceToken).all())
        assert remaining == ["tok-bad", "tok-ok"]


def test_persist_failure_raises_and_skips_push(session_factory, push_provider, make_user, monkeypatch):
    user = make_user("Ana")
    register_tokens(session_factory, user.id, "tok-1")
    fanout = build_fanout(session_factory, push_provider)

    def broken_insert(db, drafts):
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

    monkeypatch.setattr(fanout.store, "insert_many", broken_insert)

    with pytest.raises(PersistError):
        send(fanout, [user.id])
    assert push_provider.calls == []


def test_token_resolution_failure_keeps_saved_records(session_factory, push_provider, make_user, monkeypatch):
    user = make_user("Ana")
    fanout = build_fanout(session_factory, push_provider)

    def broken_lookup(db, user_ids):
        raise OperationalError("SELECT token", {}, Exception("timeout"))

    monkeypatch.setattr(fanout.tokens, "tokens_for_users", broken_lookup)

    result = send(fanout, [user.id])

    assert (result.saved, result.pushed, result.failed) == (1, 0, 0)
    assert count_notifications(session_factory) == 1


def test_device_token_moves_to_new_owner(session_factory, make_user):
    first = make_user("Ana")
    second = make_user("Bruno")
    register_tokens(session_factory, first.id, "shared-device")
    register_tokens(session_factory, second.id, "shared-device")

    with session_factory() as db:
        assert device_tokens.tokens_for_users(db, [first.id]) == []
        assert device_tokens.tokens_for_users(db, [second.id]) == ["shared-device"]

    with session_factory.begin() as db:
        assert device_tokens.remove(db, second.id, "shared-device") == 1


def test_unknown_recipients_are_skipped(session_factory, push_provider, make_user):
    user = make_user("Ana")
    register_tokens(session_factory, user.id, "tok-ana")
    fanout = build_fanout(session_factory, push_provider)

    result = send(fanout, [9999, user.id, 8888])

    assert (result.saved, result.pushed, result.failed) == (1, 1, 0)
    assert count_notifications(session_factory) == 1

    assert send(fanout, [9999]).saved == 0
    assert count_notifications(session_factory) == 1
