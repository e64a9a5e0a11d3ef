"""
Tests for the vendor adapters and the Slashy API client, with mocked HTTP responses.
"""
from unittest.mock import MagicMock

import pytest
import requests
from tenacity import wait_none

from slashy.client import SlashyClient
from slashy.core_app.api_clients import http
from slashy.core_app.api_clients.auth_client import AuthClient
from slashy.core_app.api_clients.composio_client import ComposioClient
from slashy.core_app.api_clients.gemini_client import GeminiClient
from slashy.core_app.errors import ConflictError, NotFoundError, UpstreamProviderError
from slashy.core_app.models.models import ConnectionState
from slashy.core_app.services.polling import CancellationToken


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(http, "retry_wait", wait_none())


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


# ===========================
# ComposioClient
# ===========================

def test_initiate_connection(session, test_settings, make_response):
    session.request.return_value = make_response(200, {
        "id": "ca_123",
        "connectionStatus": {"id": "req_abc"},
        "redirect_url": "https://connect.composio.test/req_abc",
    })

    initiated = ComposioClient(test_settings, session).initiate_connection("github", "ac_github", "user-1")

    assert initiated.connection_request_id == "req_abc"
    assert initiated.redirect_url == "https://connect.composio.test/req_abc"
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("POST", "https://backend.composio.dev/api/v3/connected_accounts")
    assert kwargs["headers"]["x-api-key"] == "test-composio-key"
    assert kwargs["json"]["auth_config"] == {"id": "ac_github"}
    assert kwargs["json"]["connection"] == {"user_id": "user-1"}
    assert kwargs["timeout"] == 15.0


def test_initiate_connection_is_not_retried(session, test_settings, make_response):
    session.request.return_value = make_response(503, text="unavailable")

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).initiate_connection("github", "ac_github", "user-1")

    assert exc_info.value.status_code == 503
    assert session.request.call_count == 1


def test_initiate_connection_without_redirect(session, test_settings, make_response):
    session.request.return_value = make_response(200, {"id": "ca_123"})

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).initiate_connection("github", "ac_github", "user-1")

    assert exc_info.value.status_code == 502


def test_missing_api_key_fails_before_sending(session, test_settings):
    test_settings.composio_api_key = None

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).get_connection_status("req_1")

    assert exc_info.value.status_code == 500
    session.request.assert_not_called()


def test_connection_status_retries_transient_failures(session, test_settings, make_response):
    session.request.side_effect = [
        make_response(503, text="busy"),
        requests.ConnectionError("reset"),
        make_response(200, {"id": "ca_1", "status": "active"}),
    ]

    status = ComposioClient(test_settings, session).get_connection_status("req_1")

    assert status.is_active
    assert status.connection_id == "ca_1"
    assert session.request.call_count == 3


def test_connection_status_does_not_retry_client_errors(session, test_settings, make_response):
    session.request.return_value = make_response(404, {"message": "not found"})

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).get_connection_status("req_missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.to_dict() == {"error": "Composio error: 404", "details": '{"message": "not found"}'}
    assert session.request.call_count == 1


def test_connection_status_timeout(session, test_settings):
    session.request.side_effect = requests.Timeout("slow")

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).get_connection_status("req_1")

    assert exc_info.value.status_code == 504
    assert session.request.call_count == 3


def test_connection_status_persistent_server_error(session, test_settings, make_response):
    session.request.return_value = make_response(502, text="bad gateway")

    with pytest.raises(UpstreamProviderError) as exc_info:
        ComposioClient(test_settings, session).get_connection_status("req_1")

    assert exc_info.value.status_code == 502
    assert session.request.call_count == 3


def test_list_actions_filters_by_app(session, test_settings, make_response):
    session.request.return_value = make_response(200, {"items": [
        {"name": "GITHUB_CREATE_ISSUE", "appName": "GitHub", "description": "Create an issue"},
        {"slug": "GITHUB_STAR_REPO", "toolkit": {"slug": "github"}},
        {"name": "SLACK_SEND_MESSAGE", "app_name": "slack"},
        {"description": "no name"},
    ]})

    actions = ComposioClient(test_settings, session).list_actions("user-1", {"github"})

    assert [a.name for a in actions] == ["GITHUB_CREATE_ISSUE", "GITHUB_STAR_REPO"]
    assert session.request.call_args.kwargs["params"] == {"apps": "github", "user_id": "user-1"}


# ===========================
# GeminiClient
# ===========================

def test_generate_content_request(session, test_settings, make_response):
    session.request.return_value = make_response(200, {"candidates": []})
    declarations = [{"name": "GITHUB_CREATE_ISSUE", "description": "x", "parameters": {"type": "object"}}]

    GeminiClient(test_settings, session).generate_content(
        [{"role": "user", "parts": [{"text": "hi"}]}],
        system_instruction="Be brief",
        function_declarations=declarations,
    )

    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "POST"
    assert url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"
    assert kwargs["params"] == {"key": "test-gemini-key"}
    assert kwargs["json"]["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
    assert kwargs["json"]["tools"] == [{"functionDeclarations": declarations}]
    assert kwargs["json"]["generationConfig"] == {"maxOutputTokens": 2048, "temperature": 0.7}


def test_generate_content_without_tools(session, test_settings, make_response):
    session.request.return_value = make_response(200, {"candidates": []})

    GeminiClient(test_settings, session).generate_content([{"role": "user", "parts": [{"text": "hi"}]}])

    body = session.request.call_args.kwargs["json"]
    assert "tools" not in body
    assert "systemInstruction" not in body


def test_generate_content_non_json_body(session, test_settings, make_response):
    session.request.return_value = make_response(200, text="<html>oops</html>")

    with pytest.raises(UpstreamProviderError) as exc_info:
        GeminiClient(test_settings, session).generate_content([{"role": "user", "parts": [{"text": "hi"}]}])

    assert exc_info.value.status_code == 502


# ===========================
# AuthClient
# ===========================

def test_validate_token(session, test_settings, make_response):
    session.get.return_value = make_response(200, {"id": "user-1", "email": "a@example.com"})

    account = AuthClient(test_settings, session).validate_token("token")

    assert account == {"id": "user-1", "email": "a@example.com", "role": "authenticated"}
    headers = session.get.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer token"
    assert headers["apikey"] == "anon-key"


def test_validate_token_rejected(session, test_settings, make_response):
    session.get.return_value = make_response(401, {"msg": "invalid JWT"})

    assert AuthClient(test_settings, session).validate_token("token") is None


def test_validate_token_service_down(session, test_settings):
    session.get.side_effect = requests.ConnectionError("down")

    with pytest.raises(UpstreamProviderError) as exc_info:
        AuthClient(test_settings, session).validate_token("token")

    assert exc_info.value.status_code == 503


# ===========================
# SlashyClient
# ===========================

class RecordingWindow:
    opened = []

    def __init__(self, url):
        RecordingWindow.opened.append(url)
        self.closed = False

    def close(self):
        self.closed = True


class InstantClock:
    def sleep(self, seconds, token):
        return True


def test_send_message(session, make_response):
    session.post.return_value = make_response(200, {"response": "Hello Ada", "chatId": "chat-1", "tools": []})

    result = SlashyClient("https://api.slashy.test/", session=session).send_message("hi", guest_id="g-1")

    assert result.reply_text == "Hello Ada"
    assert result.chat_id == "chat-1"
    assert session.post.call_args.args[0] == "https://api.slashy.test/chat"
    assert session.post.call_args.kwargs["json"] == {"message": "hi", "integrations": [], "guestId": "g-1"}


@pytest.mark.parametrize("status,error_class", [(404, NotFoundError), (409, ConflictError)])
def test_error_responses_map_to_errors(session, make_response, status, error_class):
    session.post.return_value = make_response(status, {"error": "nope", "details": "because"})

    with pytest.raises(error_class) as exc_info:
        SlashyClient("https://api.slashy.test", session=session).send_message("hi", guest_id="g-1")

    assert exc_info.value.message == "nope"
    assert exc_info.value.details == "because"


def test_upstream_status_is_kept(session, make_response):
    session.post.return_value = make_response(502, {"error": "Composio error: 502"})

    with pytest.raises(UpstreamProviderError) as exc_info:
        SlashyClient("https://api.slashy.test", session=session).check_connection_status("req_1")

    assert exc_info.value.status_code == 502


def test_connect_integration_polls_until_completed(session, make_response):
    RecordingWindow.opened = []
    session.post.side_effect = [
        make_response(200, {"redirectUrl": "https://connect.composio.test/req_1", "connectionRequestId": "req_1"}),
        make_response(200, {"status": "pending"}),
        make_response(200, {"status": "completed", "connectionId": "ca_1"}),
    ]

    client = SlashyClient("https://api.slashy.test", access_token="token-alice", session=session)
    result = client.connect_integration("github", window_factory=RecordingWindow, clock=InstantClock())

    assert result.state == ConnectionState.COMPLETED
    assert result.connection_id == "ca_1"
    assert RecordingWindow.opened == ["https://connect.composio.test/req_1"]
    assert session.post.call_count == 3
    assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer token-alice"


def test_connect_integration_reports_timeout(session, make_response):
    RecordingWindow.opened = []
    session.post.side_effect = [
        make_response(200, {"redirectUrl": "https://connect.composio.test/req_1", "connectionRequestId": "req_1"}),
        make_response(200, {"status": "pending"}),
        make_response(200, {"status": "pending"}),
    ]

    result = SlashyClient("https://api.slashy.test", session=session).connect_integration(
        "github", owner_id="g-1", window_factory=RecordingWindow, clock=InstantClock(), max_attempts=2,
    )

    assert result.state == ConnectionState.TIMED_OUT
    assert result.message == "Authentication timed out"
    assert session.post.call_count == 3


def test_connect_integration_reports_abandoned(session, make_response):
    session.post.side_effect = [
        make_response(200, {"redirectUrl": "https://connect.composio.test/req_1", "connectionRequestId": "req_1"}),
    ]
    token = CancellationToken()
    token.cancel()

    result = SlashyClient("https://api.slashy.test", session=session).connect_integration(
        "github", owner_id="g-1", window_factory=RecordingWindow, clock=InstantClock(), token=token,
    )

    assert result.state == ConnectionState.ABANDONED
    assert session.post.call_count == 1
