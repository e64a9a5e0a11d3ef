"""
Pytest configuration and shared fixtures.
Provides an in-memory database, settings, fake providers and an API client.
"""
import json
import os
from typing import Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
import requests
from sqlalchemy.orm import Session, sessionmaker

# Set testing environment before importing the app
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["COMPOSIO_API_KEY"] = "test-composio-key"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"

from langchain_core.messages import AIMessage

from slashy.core_app.config import Settings, get_settings
from slashy.core_app.database.session import create_db_engine, get_db, init_db
from slashy.core_app.dependencies.auth import get_auth_client
from slashy.core_app.dependencies.services import get_chat_model, get_tool_provider
from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.models.models import InitiatedConnection, ProviderConnectionStatus, ToolAction
from slashy.core_app.services.guests import create_guest


class FakeToolProvider:
    """Stands in for the Composio client; connection requests are numbered req_1, req_2, ..."""

    def __init__(self):
        self.initiated: List[Dict] = []
        self.statuses: Dict[str, ProviderConnectionStatus] = {}
        self.status_calls: List[str] = []
        self.actions: List[ToolAction] = []
        self.list_calls: List[set] = []
        self.list_error: Optional[Exception] = None

    def initiate_connection(self, integration_id, auth_config_id, user_id) -> InitiatedConnection:
        request_id = f"req_{len(self.initiated) + 1}"
        self.initiated.append({
            "integration_id": integration_id,
            "auth_config_id": auth_config_id,
            "user_id": user_id,
            "request_id": request_id,
        })
        self.statuses.setdefault(request_id, ProviderConnectionStatus(status="INITIATED"))
        return InitiatedConnection(
            redirect_url=f"https://connect.composio.test/{request_id}",
            connection_request_id=request_id,
        )

    def set_status(self, request_id: str, status: str, connection_id: Optional[str] = None):
        self.statuses[request_id] = ProviderConnectionStatus(status=status, connection_id=connection_id)

    def get_connection_status(self, connection_request_id) -> ProviderConnectionStatus:
        self.status_calls.append(connection_request_id)
        if connection_request_id not in self.statuses:
            raise UpstreamProviderError("Composio error: 404", status_code=404,
                                        details='{"message": "Connected account not found"}',
                                        provider="Composio")
        return self.statuses[connection_request_id]

    def list_actions(self, owner_id=None, apps=None) -> List[ToolAction]:
        self.list_calls.append(set(apps or []))
        if self.list_error is not None:
            raise self.list_error
        return [a for a in self.actions if not apps or a.app_name in apps]


class FakeAuthClient:
    def __init__(self, accounts: Dict[str, Dict]):
        self.accounts = accounts

    def validate_token(self, token):
        return self.accounts.get(token)


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        composio_api_key="test-composio-key",
        gemini_api_key="test-gemini-key",
        gemini_model="gemini-test",
        auth_service_url="https://auth.slashy.test",
        auth_service_key="anon-key",
        http_max_retries=3,
        poll_interval=0,
        poll_max_attempts=5,
        integration_auth_configs={"github": "ac_github"},
    )


# ===========================
# Database Fixtures
# ===========================

@pytest.fixture
def db_engine():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def guest(db_session):
    return create_guest(db_session, "Ada", "guest_1700000000000")


# ===========================
# Provider Fixtures
# ===========================

@pytest.fixture
def tool_provider() -> FakeToolProvider:
    return FakeToolProvider()


@pytest.fixture
def chat_model():
    model = MagicMock()
    model.invoke.return_value = AIMessage(content="Hello Ada, nice to meet you!")
    return model


@pytest.fixture
def make_response():
    """Factory for real requests.Response objects."""

    def _make(status_code: int, body=None, text: Optional[str] = None) -> requests.Response:
        response = requests.Response()
        response.status_code = status_code
        response.encoding = "utf-8"
        if body is not None:
            response._content = json.dumps(body).encode("utf-8")
            response.headers["Content-Type"] = "application/json"
        else:
            response._content = (text or "").encode("utf-8")
        return response

    return _make


# ===========================
# API Fixtures
# ===========================

@pytest.fixture
def accounts() -> Dict[str, Dict]:
    return {"token-alice": {"id": "user-alice", "email": "alice@example.com", "role": "authenticated"}}


@pytest.fixture
def client(db_session, test_settings, tool_provider, chat_model, accounts):
    from fastapi.testclient import TestClient

    from slashy.api import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_tool_provider] = lambda: tool_provider
    app.dependency_overrides[get_chat_model] = lambda: chat_model
    app.dependency_overrides[get_auth_client] = lambda: FakeAuthClient(accounts)

    yield TestClient(app)

    app.dependency_overrides.clear()
