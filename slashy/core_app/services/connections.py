# slashy/core_app/services/connections.py
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slashy.core_app.database.models import (
    CONNECTION_COMPLETED, CONNECTION_ERROR, CONNECTION_PENDING, Connection, utcnow,
)
from slashy.core_app.database.session import store_operation
from slashy.core_app.errors import ConflictError, PersistenceError


def get_connection(db: Session, owner_id: str, integration_id: str) -> Optional[Connection]:
    with store_operation(db, "fetch connection", commit=False):
        return (
            db.query(Connection)
            .filter(Connection.user_id == owner_id, Connection.integration_id == integration_id)
            .first()
        )


def get_connection_by_request(db: Session, connection_request_id: str,
                              owner_id: Optional[str] = None) -> Optional[Connection]:
    query = db.query(Connection).filter(Connection.connection_request_id == connection_request_id)
    if owner_id is not None:
        query = query.filter(Connection.user_id == owner_id)
    with store_operation(db, "fetch connection", commit=False):
        return query.first()


def list_connections(db: Session, owner_id: str) -> List[Connection]:
    with store_operation(db, "fetch connections", commit=False):
        return (
            db.query(Connection)
            .filter(Connection.user_id == owner_id)
            .order_by(Connection.integration_id.asc())
            .all()
        )


def get_completed_integrations(db: Session, owner_id: str) -> Set[str]:
    with store_operation(db, "fetch connections", commit=False):
        rows = (
            db.query(Connection.integration_id)
            .filter(Connection.user_id == owner_id, Connection.status == CONNECTION_COMPLETED)
            .all()
        )
    return {row[0].lower() for row in rows}


def upsert_pending_connection(db: Session, owner_id: str, integration_id: str, auth_config_id: str,
                              connection_request_id: str, redirect_url: Optional[str]) -> Connection:
    """
    Store a pending connection for (owner, integration); the latest initiation wins.
    A completed grant is never overwritten.
    """
    for attempt in range(2):
        connection = get_connection(db, owner_id, integration_id)
        if connection is not None and connection.status == CONNECTION_COMPLETED:
            raise ConflictError(
                f"Integration '{integration_id}' is already connected",
                details="Disconnect it before starting a new authorization",
            )

        try:
            with store_operation(db, "store connection request"):
                if connection is None:
                    connection = Connection(user_id=owner_id, integration_id=integration_id)
                    db.add(connection)
                connection.auth_config_id = auth_config_id
                connection.connection_request_id = connection_request_id
                connection.connection_id = None
                connection.status = CONNECTION_PENDING
                connection.redirect_url = redirect_url
                connection.error_message = None
                connection.updated_at = utcnow()
            return connection
        except PersistenceError as e:
            # A concurrent initiation inserted the row first; retry as an update.
            if attempt == 0 and isinstance(e.__cause__, IntegrityError):
                continue
            raise


def _finish_pending(db: Session, connection_request_id: str, owner_id: Optional[str], values: dict) -> int:
    query = db.query(Connection).filter(
        Connection.connection_request_id == connection_request_id,
        Connection.status == CONNECTION_PENDING,
    )
    if owner_id is not None:
        query = query.filter(Connection.user_id == owner_id)
    with store_operation(db, "update connection status"):
        updated = query.update({**values, Connection.updated_at: utcnow()}, synchronize_session=False)
    return updated


def mark_connection_completed(db: Session, connection_request_id: str, connection_id: Optional[str],
                              owner_id: Optional[str] = None) -> int:
    return _finish_pending(db, connection_request_id, owner_id, {
        Connection.status: CONNECTION_COMPLETED,
        Connection.connection_id: connection_id,
    })


def mark_connection_error(db: Session, connection_request_id: str, message: Optional[str],
                          owner_id: Optional[str] = None) -> int:
    return _finish_pending(db, connection_request_id, owner_id, {
        Connection.status: CONNECTION_ERROR,
        Connection.error_message: message,
    })


def delete_connection(db: Session, owner_id: str, integration_id: str) -> bool:
    connection = get_connection(db, owner_id, integration_id)
    if connection is None:
        return False
    with store_operation(db, "delete connection"):
        db.delete(connection)
    return True
