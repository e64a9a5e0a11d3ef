# slashy/core_app/services/connection_lifecycle.py
from typing import List, Optional

from sqlalchemy.orm import Session

from slashy.core_app.api_clients.composio_client import ComposioClient
from slashy.core_app.config import Settings
from slashy.core_app.database.models import CONNECTION_COMPLETED, CONNECTION_ERROR, Connection
from slashy.core_app.errors import ConflictError, NotFoundError, ValidationError
from slashy.core_app.models.models import ConnectionState, ConnectionStatusResult, InitiatedConnection
from slashy.core_app.services import connections
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

_STORED_STATES = {
    CONNECTION_COMPLETED: ConnectionState.COMPLETED,
    CONNECTION_ERROR: ConnectionState.ERROR,
}


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"Bad request: {field} is required")
    return str(value).strip()


class ConnectionLifecycle:
    """
    Authorization lifecycle per (owner, integration):
    initiate -> user authorizes at the provider -> poll or callback -> completed.
    """

    def __init__(self, db: Session, tool_provider: ComposioClient, settings: Settings):
        self.db = db
        self.tool_provider = tool_provider
        self.settings = settings

    def initiate(self, owner_id: str, integration_id: str,
                 auth_config_id: Optional[str] = None) -> InitiatedConnection:
        owner_id = _require(owner_id, "ownerId")
        integration_id = _require(integration_id, "integrationId").lower()
        auth_config_id = (
            (auth_config_id or "").strip()
            or self.settings.auth_config_for(integration_id)
            or integration_id
        )

        if self.connection_state(owner_id, integration_id).state == ConnectionState.COMPLETED:
            raise ConflictError(
                f"Integration '{integration_id}' is already connected",
                details="Disconnect it before starting a new authorization",
            )

        initiated = self.tool_provider.initiate_connection(integration_id, auth_config_id, owner_id)
        logger.info(f"Composio connection initiated: {integration_id} for {owner_id} "
                    f"(request {initiated.connection_request_id})")

        connections.upsert_pending_connection(
            self.db, owner_id, integration_id, auth_config_id,
            initiated.connection_request_id, initiated.redirect_url,
        )
        return initiated

    def connection_state(self, owner_id: str, integration_id: str) -> ConnectionStatusResult:
        """Stored state of the (owner, integration) pair; NONE before the first initiation."""
        row = connections.get_connection(self.db, owner_id, integration_id.lower())
        if row is None:
            return ConnectionStatusResult(state=ConnectionState.NONE)
        if row.status in _STORED_STATES:
            return self._stored_result(row)
        return ConnectionStatusResult(state=ConnectionState.PENDING)

    def poll_status(self, connection_request_id: str, owner_id: Optional[str]) -> ConnectionStatusResult:
        """
        Only the owner of a tracked request can see it complete. A request id that
        belongs to another owner is reported as not found without asking the provider.
        """
        connection_request_id = _require(connection_request_id, "connectionRequestId")

        row = connections.get_connection_by_request(self.db, connection_request_id, owner_id)
        if row is None and owner_id is not None and \
                connections.get_connection_by_request(self.db, connection_request_id) is not None:
            raise NotFoundError(f"Connection request not found: {connection_request_id}")
        if row is not None and row.status in _STORED_STATES:
            return self._stored_result(row)

        provider_status = self.tool_provider.get_connection_status(connection_request_id)
        if not provider_status.is_active:
            return ConnectionStatusResult(state=ConnectionState.PENDING)

        updated = connections.mark_connection_completed(
            self.db, connection_request_id, provider_status.connection_id, owner_id,
        )
        if updated:
            logger.info(f"Connection request {connection_request_id} completed")
            return ConnectionStatusResult(state=ConnectionState.COMPLETED,
                                          connection_id=provider_status.connection_id)

        # Nothing pending was updated: the row was finished concurrently, or the id is stale.
        row = connections.get_connection_by_request(self.db, connection_request_id, owner_id)
        if row is not None and row.status in _STORED_STATES:
            return self._stored_result(row)
        logger.warning(f"Provider reports {connection_request_id} active but no pending row tracks it")
        raise NotFoundError(f"Connection request not found: {connection_request_id}")

    def complete_from_callback(self, error: Optional[str] = None,
                               connection_request_id: Optional[str] = None) -> ConnectionStatusResult:
        row = None
        if connection_request_id:
            row = connections.get_connection_by_request(self.db, connection_request_id)

        if error:
            if row is not None:
                connections.mark_connection_error(self.db, connection_request_id, error)
            logger.warning(f"Authorization callback reported an error: {error}")
            return ConnectionStatusResult(state=ConnectionState.ERROR, message=f"Authentication failed: {error}")

        if not connection_request_id:
            if self.settings.verify_callback_status:
                return ConnectionStatusResult(state=ConnectionState.PENDING,
                                              message="No connection request to verify")
            return ConnectionStatusResult(state=ConnectionState.COMPLETED,
                                          message="Authentication completed successfully!")

        if not self.settings.verify_callback_status:
            if row is not None:
                connections.mark_connection_completed(self.db, connection_request_id, row.connection_id)
            return ConnectionStatusResult(state=ConnectionState.COMPLETED,
                                          message="Integration connected successfully!")

        result = self.poll_status(connection_request_id, row.user_id if row is not None else None)
        if result.state == ConnectionState.COMPLETED:
            result.message = "Integration connected successfully!"
        elif result.state == ConnectionState.PENDING:
            result.message = "The provider has not confirmed the connection yet"
        return result

    def list_connections(self, owner_id: str) -> List[Connection]:
        return connections.list_connections(self.db, _require(owner_id, "ownerId"))

    def disconnect(self, owner_id: str, integration_id: str) -> bool:
        owner_id = _require(owner_id, "ownerId")
        integration_id = _require(integration_id, "integrationId").lower()
        removed = connections.delete_connection(self.db, owner_id, integration_id)
        if removed:
            logger.info(f"Disconnected {integration_id} for {owner_id}")
        return removed

    @staticmethod
    def _stored_result(row: Connection) -> ConnectionStatusResult:
        return ConnectionStatusResult(
            state=_STORED_STATES[row.status],
            connection_id=row.connection_id,
            message=row.error_message,
        )
