import json
from http.client import IncompleteRead
from urllib.error import URLError

import pytest
from google.auth.exceptions import RefreshError

from assignhub.services.push import (
    FcmPushProvider,
    LogPushProvider,
    PushDispatcher,
    PushPayload,
    PushResult,
    build_push_data,
    build_push_provider,
)

from .fakes import FakeCredentials

PAYLOAD = PushPayload(title="Tarefa", body="Mensagem", data={"type": "TASK_CREATED"})


class PartialProvider:
    def __init__(self, results):
        self.results = results

    def send_batch(self, tokens, payload):
        return self.results


def test_dispatcher_counts_per_token_outcomes():
    provider = PartialProvider(
        [
            PushResult(token="a", success=True),
            PushResult(token="b", success=False, error="INVALID_ARGUMENT"),
            PushResult(token="c", success=False, error="UNREGISTERED", unregistered=True),
            PushResult(token="d", success=True),
        ]
    )
    report = PushDispatcher(provider).deliver(["a", "b", "c", "d"], PAYLOAD)

    assert report.success_count == 2
    assert report.failure_count == 2
    assert report.unregistered_tokens == ["c"]


def test_dispatcher_counts_missing_results_as_failures():
    provider = PartialProvider([PushResult(token="a", success=True)])
    report = PushDispatcher(provider).deliver(["a", "b"], PAYLOAD)

    assert report.success_count == 1
    assert report.failure_count == 1


def test_dispatcher_skips_provider_without_tokens():
    provider = PartialProvider(None)
    report = PushDispatcher(provider).deliver([], PAYLOAD)
    assert (report.success_count, report.failure_count) == (0, 0)


def test_log_provider_reports_success():
    results = LogPushProvider().send_batch(["token-1", "token-2"], PAYLOAD)
    assert [r.success for r in results] == [True, True]


def test_build_push_data_stringifies_values():
    assert build_push_data({"relatedTaskId": 7, "extra": None, "type": "X"}) == {
        "relatedTaskId": "7",
        "extra": "",
        "type": "X",
    }


def test_build_push_provider_rejects_unknown_backend():
    assert isinstance(build_push_provider("log"), LogPushProvider)
    with pytest.raises(ValueError):
        build_push_provider("pombo-correio")


def test_fcm_provider_requires_credentials():
    with pytest.raises(RuntimeError):
        FcmPushProvider("", FakeCredentials())
    with pytest.raises(RuntimeError):
        FcmPushProvider("projeto-teste", None)


def test_fcm_provider_isolates_each_token(monkeypatch):
    provider = FcmPushProvider("projeto-teste", FakeCredentials(valid=True), auth_request=object())
    sent = []

    def fake_post(body, access_token):
        message = json.loads(body.decode("utf-8"))["message"]
        sent.append(message["token"])
        token = message["token"]
        if token == "down":
            raise URLError("connection refused")
        if token == "gone":
            error = {"error": {"status": "NOT_FOUND", "details": [{"errorCode": "UNREGISTERED"}]}}
            return 404, json.dumps(error)
        if token == "bad":
            return 400, json.dumps({"error": {"status": "INVALID_ARGUMENT"}})
        return 200, "{}"

    monkeypatch.setattr(provider, "_post", fake_post)
    results = provider.send_batch(["ok-1", "down", "gone", "bad", "ok-2"], PAYLOAD)

    assert sent == ["ok-1", "down", "gone", "bad", "ok-2"]
    by_token = {r.token: r for r in results}
    assert by_token["ok-1"].success and by_token["ok-2"].success
    assert by_token["down"].error == "transport"
    assert by_token["gone"].unregistered is True
    assert by_token["bad"].error == "INVALID_ARGUMENT"
    assert by_token["bad"].unregistered is False


def test_fcm_provider_stops_at_total_deadline(monkeypatch):
    provider = FcmPushProvider("projeto-teste", FakeCredentials(valid=True), total_timeout=0, auth_request=object())
    monkeypatch.setattr(provider, "_post", lambda body, access_token: pytest.fail("nao deveria enviar"))

    results = provider.send_batch(["a", "b"], PAYLOAD)

    assert [r.error for r in results] == ["deadline", "deadline"]


def test_fcm_provider_survives_malformed_error_bodies(monkeypatch):
    provider = FcmPushProvider("projeto-teste", FakeCredentials(valid=True), auth_request=object())
    sent = []

    def fake_post(body, access_token):
        token = json.loads(body.decode("utf-8"))["message"]["token"]
        sent.append(token)
        if token == "lista":
            return 500, '["unexpected"]'
        if token == "detalhe":
            return 400, json.dumps({"error": {"status": "INVALID_ARGUMENT", "details": ["texto", None]}})
        if token == "cortado":
            raise IncompleteRead(b"{")
        return 200, "{}"

    monkeypatch.setattr(provider, "_post", fake_post)
    report = PushDispatcher(provider).deliver(["lista", "detalhe", "cortado", "ok"], PAYLOAD)

    assert sent == ["lista", "detalhe", "cortado", "ok"]
    assert (report.success_count, report.failure_count) == (1, 3)
    results = {r.token: r for r in provider.send_batch(["lista", "detalhe", "cortado"], PAYLOAD)}
    assert results["lista"].error == "http_500"
    assert results["detalhe"].error == "INVALID_ARGUMENT"
    assert results["cortado"].error == "transport"


def test_fcm_provider_refreshes_expired_credentials(monkeypatch):
    credentials = FakeCredentials(valid=False)
    provider = FcmPushProvider("projeto-teste", credentials, auth_request=object())
    bearer_tokens = []
    monkeypatch.setattr(provider, "_post", lambda body, access_token: bearer_tokens.append(access_token) or (200, "{}"))

    provider.send_batch(["a", "b"], PAYLOAD)
    credentials.expire()
    provider.send_batch(["c"], PAYLOAD)

    assert credentials.refresh_count == 2
    assert bearer_tokens == ["token-1", "token-1", "token-2"]


def test_fcm_provider_reports_auth_failure_per_token(monkeypatch):
    credentials = FakeCredentials(refresh_error=RefreshError("conta de servico revogada"))
    provider = FcmPushProvider("projeto-teste", credentials, auth_request=object())
    monkeypatch.setattr(provider, "_post", lambda body, access_token: pytest.fail("nao deveria enviar"))

    results = provider.send_batch(["a", "b"], PAYLOAD)

    assert [r.error for r in results] == ["auth", "auth"]


def test_fcm_provider_from_missing_service_account_file():
    with pytest.raises(RuntimeError):
        FcmPushProvider.from_service_account_file(None)
