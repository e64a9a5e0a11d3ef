from typing import Any, Callable, Dict, Optional, Sequence

import requests

from slashy.core_app.errors import (
    AbandonedError, ConflictError, NotFoundError, PollingTimeoutError, SlashyError, Unauthorized,
    UpstreamProviderError, ValidationError,
)
from slashy.core_app.models.models import (
    ConnectionState, ConnectionStatusResult, InitiatedConnection, TurnResult,
)
from slashy.core_app.services.polling import (
    DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, AuthWindow, BrowserAuthWindow, CancellationToken, Clock,
    ConnectionPoller,
)
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

SERVICE = "Slashy"

_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: Unauthorized,
    404: NotFoundError,
    409: ConflictError,
}


def _error_from(response: requests.Response) -> SlashyError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("error") or f"{SERVICE} error: {response.status_code}"
    details = body.get("details")
    error_class = _ERRORS_BY_STATUS.get(response.status_code)
    if error_class is not None:
        return error_class(message, details=details)
    return UpstreamProviderError(message, status_code=response.status_code, details=details, provider=SERVICE)


class SlashyClient:
    """
    Client for the Slashy API: chat turns and the integration connect flow
    (initiate, open the authorization page, poll until the grant completes).
    """

    def __init__(self, base_url: str, access_token: Optional[str] = None, timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        try:
            response = self.session.post(f"{self.base_url}{path}", json=payload, headers=headers,
                                         timeout=self.timeout)
        except requests.Timeout as e:
            raise UpstreamProviderError(f"{SERVICE} request timed out", status_code=504, provider=SERVICE) from e
        except requests.RequestException as e:
            raise UpstreamProviderError(f"{SERVICE} unavailable", status_code=502, details=str(e),
                                        provider=SERVICE) from e

        if not response.ok:
            raise _error_from(response)
        return response.json()

    def send_message(self, message: str, guest_id: Optional[str] = None, user_id: Optional[str] = None,
                     chat_id: Optional[str] = None, integrations: Sequence[str] = ()) -> TurnResult:
        payload = {"message": message, "integrations": list(integrations)}
        if chat_id:
            payload["chatId"] = chat_id
        if guest_id:
            payload["guestId"] = guest_id
        if user_id:
            payload["userId"] = user_id

        data = self._post("/chat", payload)
        return TurnResult(reply_text=data["response"], chat_id=data["chatId"], tool_names=data.get("tools") or [])

    def initiate_connection(self, integration_id: str, auth_config_id: Optional[str] = None,
                            owner_id: Optional[str] = None) -> InitiatedConnection:
        payload = {"action": "initiate", "integrationId": integration_id}
        if auth_config_id:
            payload["authConfigId"] = auth_config_id
        if owner_id:
            payload["ownerId"] = owner_id

        data = self._post("/auth", payload)
        return InitiatedConnection(redirect_url=data["redirectUrl"],
                                   connection_request_id=data["connectionRequestId"])

    def check_connection_status(self, connection_request_id: str,
                                owner_id: Optional[str] = None) -> ConnectionStatusResult:
        payload = {"action": "check_status", "connectionRequestId": connection_request_id}
        if owner_id:
            payload["ownerId"] = owner_id

        data = self._post("/auth", payload)
        return ConnectionStatusResult(state=ConnectionState(data["status"]),
                                      connection_id=data.get("connectionId"))

    def connect_integration(
            self,
            integration_id: str,
            auth_config_id: Optional[str] = None,
            owner_id: Optional[str] = None,
            window_factory: Callable[[str], AuthWindow] = BrowserAuthWindow,
            interval: float = DEFAULT_INTERVAL,
            max_attempts: int = DEFAULT_MAX_ATTEMPTS,
            clock: Optional[Clock] = None,
            token: Optional[CancellationToken] = None,
    ) -> ConnectionStatusResult:
        """
        Full connect flow. The result is COMPLETED or ERROR when the provider
        answers, TIMED_OUT when polling is exhausted and ABANDONED when the
        window is closed or the token cancelled.
        """
        initiated = self.initiate_connection(integration_id, auth_config_id, owner_id)
        logger.info(f"Opening authorization page for {integration_id}")
        window = window_factory(initiated.redirect_url)

        poller = ConnectionPoller(
            lambda request_id: self.check_connection_status(request_id, owner_id),
            interval=interval,
            max_attempts=max_attempts,
            clock=clock,
        )
        try:
            return poller.poll(initiated.connection_request_id, window, token)
        except PollingTimeoutError as e:
            return ConnectionStatusResult(state=ConnectionState.TIMED_OUT, message=e.message)
        except AbandonedError as e:
            return ConnectionStatusResult(state=ConnectionState.ABANDONED, message=e.message)
