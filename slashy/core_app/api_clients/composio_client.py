# slashy/core_app/api_clients/composio_client.py
from typing import Iterable, List, Optional

import requests

from slashy.core_app.api_clients.http import parse_json, send_request
from slashy.core_app.config import Settings
from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.models.models import InitiatedConnection, ProviderConnectionStatus, ToolAction
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

SERVICE = "Composio"


class ComposioClient:
    """Integration platform adapter: connection initiation, status checks and tool listing."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.api_key = settings.composio_api_key
        self.base_url = settings.composio_base_url.rstrip("/")
        self.timeout = settings.http_timeout
        self.max_attempts = settings.http_max_retries
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        if not self.api_key:
            raise UpstreamProviderError("Server configuration error: Composio API key not configured",
                                        status_code=500, provider=SERVICE)
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-key": self.api_key,
        }

    def initiate_connection(self, integration_id: str, auth_config_id: str, user_id: str) -> InitiatedConnection:
        headers = self._headers()
        payload = {
            "auth_config": {"id": auth_config_id},
            "connection": {"user_id": user_id},
            "toolName": integration_id,
            "userId": user_id,
        }
        logger.info(f"Initiating {integration_id} connection for {user_id}")

        # Creates a grant request on the provider side, so it is sent at most once.
        response = send_request(
            self.session, "POST", f"{self.base_url}/api/v3/connected_accounts",
            service=SERVICE, timeout=self.timeout, headers=headers, json=payload,
        )
        data = parse_json(response, SERVICE)

        request_id = (data.get("connectionStatus") or {}).get("id") or data.get("id")
        redirect_url = data.get("redirect_url") or data.get("redirectUrl")
        if not request_id or not redirect_url:
            logger.error(f"Unexpected initiation response: {data}")
            raise UpstreamProviderError("Invalid response from Composio: missing redirect URL or request id",
                                        status_code=502, provider=SERVICE)

        return InitiatedConnection(redirect_url=redirect_url, connection_request_id=str(request_id))

    def get_connection_status(self, connection_request_id: str) -> ProviderConnectionStatus:
        response = send_request(
            self.session, "GET", f"{self.base_url}/api/v3/connected_accounts/{connection_request_id}",
            service=SERVICE, timeout=self.timeout, max_attempts=self.max_attempts, headers=self._headers(),
        )
        data = parse_json(response, SERVICE)
        logger.debug(f"Composio connection status: {data}")

        status = data.get("connectionStatus") or data.get("status") or ""
        if isinstance(status, dict):
            status = status.get("status") or ""
        return ProviderConnectionStatus(
            status=str(status).upper(),
            connection_id=data.get("id"),
        )

    def list_actions(self, owner_id: Optional[str] = None, apps: Optional[Iterable[str]] = None) -> List[ToolAction]:
        params = {}
        app_list = sorted(set(apps or []))
        if app_list:
            params["apps"] = ",".join(app_list)
        if owner_id:
            params["user_id"] = owner_id

        response = send_request(
            self.session, "GET", f"{self.base_url}/api/v1/tools",
            service=SERVICE, timeout=self.timeout, max_attempts=self.max_attempts,
            headers=self._headers(), params=params,
        )
        data = parse_json(response, SERVICE)
        if isinstance(data, dict):
            items = data.get("tools") or data.get("items") or []
        else:
            items = data

        actions = [self._to_action(item) for item in items
                   if isinstance(item, dict) and (item.get("name") or item.get("slug"))]
        if app_list:
            actions = [a for a in actions if a.app_name in app_list]

        logger.info(f"Found {len(actions)} tools for apps: {app_list}")
        return actions

    @staticmethod
    def _to_action(item: dict) -> ToolAction:
        app_name = item.get("app_name") or item.get("appName") or (item.get("toolkit") or {}).get("slug") or ""
        return ToolAction(
            name=item.get("name") or item["slug"],
            app_name=app_name.lower(),
            description=item.get("description"),
            parameters=item.get("parameters") or item.get("input_parameters") or {},
        )
