from fastapi import Depends
from sqlalchemy.orm import Session

from slashy.core_app.api_clients.composio_client import ComposioClient
from slashy.core_app.api_clients.gemini_client import GeminiClient
from slashy.core_app.config import Settings, get_settings
from slashy.core_app.database.session import get_db
from slashy.core_app.models.text_llm import GeminiChatModel
from slashy.core_app.services.chat_turn import ChatTurnOrchestrator
from slashy.core_app.services.connection_lifecycle import ConnectionLifecycle


def get_tool_provider(settings: Settings = Depends(get_settings)) -> ComposioClient:
    return ComposioClient(settings)


def get_chat_model(settings: Settings = Depends(get_settings)) -> GeminiChatModel:
    return GeminiChatModel(client=GeminiClient(settings))


def get_connection_lifecycle(
        db: Session = Depends(get_db),
        tool_provider: ComposioClient = Depends(get_tool_provider),
        settings: Settings = Depends(get_settings),
) -> ConnectionLifecycle:
    return ConnectionLifecycle(db, tool_provider, settings)


def get_chat_orchestrator(
        db: Session = Depends(get_db),
        chat_model: GeminiChatModel = Depends(get_chat_model),
        tool_provider: ComposioClient = Depends(get_tool_provider),
        settings: Settings = Depends(get_settings),
) -> ChatTurnOrchestrator:
    return ChatTurnOrchestrator(db, chat_model, tool_provider, settings)
