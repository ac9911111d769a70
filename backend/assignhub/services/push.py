"""
Envio de push.

PushDispatcher conta sucessos e falhas por token; o transporte fica num
PushProvider escolhido por PUSH_PROVIDER:

    PUSH_PROVIDER=log   # apenas registra no log (desenvolvimento/testes)
    PUSH_PROVIDER=fcm   # Firebase Cloud Messaging HTTP v1 (conta de servico em FCM_CREDENTIALS_FILE)
"""
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request as UrlRequest, urlopen

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from assignhub.core.config import (
    FCM_CREDENTIALS_FILE,
    FCM_PROJECT_ID,
    PUSH_PROVIDER,
    PUSH_TIMEOUT_SECONDS,
    PUSH_TOTAL_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
UNREGISTERED_ERRORS = {"UNREGISTERED", "NOT_FOUND"}


@dataclass(frozen=True)
class PushPayload:
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PushResult:
    token: str
    success: bool
    error: Optional[str] = None
    unregistered: bool = False


@dataclass(frozen=True)
class DeliveryReport:
    success_count: int
    failure_count: int
    unregistered_tokens: List[str] = field(default_factory=list)


def build_push_data(values: Dict[str, Any]) -> Dict[str, str]:
    # FCM so aceita valores string em "data"
    return {str(key): "" if value is None else str(value) for key, value in values.items()}


class PushProvider(ABC):
    @abstractmethod
    def send_batch(self, tokens: List[str], payload: PushPayload) -> List[PushResult]:
        """Envia o payload para cada token e devolve um resultado por token."""


class LogPushProvider(PushProvider):
    def send_batch(self, tokens: List[str], payload: PushPayload) -> List[PushResult]:
        for token in tokens:
            logger.info("[PUSH-LOG] token=%s... titulo=%s", token[:12], payload.title)
        return [PushResult(token=token, success=True) for token in tokens]


class FcmPushProvider(PushProvider):
    """
    Uma requisicao por token. Falha de transporte num token nao interrompe
    os demais; tokens nao tentados antes do teto total contam como falha.

    ``credentials`` segue a interface de ``google.auth.credentials.Credentials``
    (``valid``, ``token``, ``refresh``); o access token OAuth2 expira em cerca
    de uma hora e e renovado antes do envio quando necessario.
    """

    def __init__(
        self,
        project_id: str,
        credentials,
        timeout: float = PUSH_TIMEOUT_SECONDS,
        total_timeout: float = PUSH_TOTAL_TIMEOUT_SECONDS,
        auth_request=None,
    ):
        if not project_id or credentials is None:
            raise RuntimeError("FCM_CREDENTIALS_FILE e FCM_PROJECT_ID sao obrigatorios para PUSH_PROVIDER=fcm")
        self.endpoint = FCM_ENDPOINT.format(project=quote(project_id, safe=""))
        self.credentials = credentials
        self.timeout = timeout
        self.total_timeout = total_timeout
        self._auth_request = auth_request
        self._auth_lock = threading.Lock()

    @classmethod
    def from_service_account_file(cls, path: Optional[str], project_id: Optional[str] = None, **kwargs) -> "FcmPushProvider":
        if not path:
            raise RuntimeError("FCM_CREDENTIALS_FILE e obrigatorio para PUSH_PROVIDER=fcm")
        credentials = service_account.Credentials.from_service_account_file(path, scopes=[FCM_SCOPE])
        return cls(project_id or credentials.project_id, credentials, **kwargs)

    def _access_token(self) -> str:
        with self._auth_lock:
            if not self.credentials.valid:
                if self._auth_request is None:
                    self._auth_request = GoogleAuthRequest()
                self.credentials.refresh(self._auth_request)
            return self.credentials.token

    def _post(self, body: bytes, access_token: str) -> tuple[int, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        request_obj = UrlRequest(self.endpoint, method="POST", data=body, headers=headers)
        try:
            with urlopen(request_obj, timeout=self.timeout) as response:
                payload = response.read().decode("utf-8", errors="ignore")
                return int(response.status), payload
        except HTTPError as exc:
            payload = exc.read().decode("utf-8", errors="ignore")
            return int(exc.code), payload

    @staticmethod
    def _error_code(response_payload: str) -> str:
        try:
            parsed = json.loads(response_payload or "{}")
        except json.JSONDecodeError:
            return ""
        error = parsed.get("error") if isinstance(parsed, dict) else None
        if not isinstance(error, dict):
            return ""
        details = error.get("details")
        for detail in details if isinstance(details, list) else []:
            if not isinstance(detail, dict):
                continue
            code = str(detail.get("errorCode") or "").strip()
            if code:
                return code
        return str(error.get("status") or "").strip()

    def _send_one(self, token: str, payload: PushPayload) -> PushResult:
        message = {
            "message": {
                "token": token,
                "notification": {"title": payload.title, "body": payload.body},
                "data": payload.data,
            }
        }
        body = json.dumps(message, ensure_ascii=False).encode("utf-8")
        try:
            access_token = self._access_token()
        except GoogleAuthError as exc:
            logger.warning("Falha ao renovar credencial do FCM: %s", exc)
            return PushResult(token=token, success=False, error="auth")
        try:
            response_status, response_payload = self._post(body, access_token)
        except (URLError, HTTPException, TimeoutError, OSError) as exc:
            logger.warning("Falha de conexão com FCM (token=%s...): %s", token[:12], exc)
            return PushResult(token=token, success=False, error="transport")
        if response_status == 200:
            return PushResult(token=token, success=True)
        code = self._error_code(response_payload)
        return PushResult(
            token=token,
            success=False,
            error=code or f"http_{response_status}",
            unregistered=response_status == 404 or code in UNREGISTERED_ERRORS,
        )

    def send_batch(self, tokens: List[str], payload: PushPayload) -> List[PushResult]:
        deadline = time.monotonic() + self.total_timeout
        results: List[PushResult] = []
        for token in tokens:
            if time.monotonic() >= deadline:
                results.append(PushResult(token=token, success=False, error="deadline"))
                continue
            results.append(self._send_one(token, payload))
        return results


def build_push_provider(name: Optional[str] = None) -> PushProvider:
    provider = str(name or PUSH_PROVIDER or "log").strip().lower()
    if provider == "log":
        return LogPushProvider()
    if provider == "fcm":
        return FcmPushProvider.from_service_account_file(FCM_CREDENTIALS_FILE, FCM_PROJECT_ID)
    raise ValueError(f"PUSH_PROVIDER desconhecido: {provider}")


class PushDispatcher:
    def __init__(self, provider: PushProvider):
        self.provider = provider

    def deliver(self, tokens: List[str], payload: PushPayload) -> DeliveryReport:
        if not tokens:
            return DeliveryReport(success_count=0, failure_count=0)
        results = self.provider.send_batch(list(tokens), payload)
        by_token = {result.token: result for result in results}
        success = 0
        failure = 0
        unregistered: List[str] = []
        for token in tokens:
            result = by_token.get(token)
            # token sem resposta do provedor conta como falha
            if result is not None and result.success:
                success += 1
                continue
            failure += 1
            if result is not None and result.unregistered:
                unregistered.append(token)
        return DeliveryReport(
            success_count=success,
            failure_count=failure,
            unregistered_tokens=unregistered,
        )
