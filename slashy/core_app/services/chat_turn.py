# slashy/core_app/services/chat_turn.py
from typing import Iterable, List, Optional, Sequence, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from sqlalchemy.orm import Session

from slashy.core_app.api_clients.composio_client import ComposioClient
from slashy.core_app.config import Settings
from slashy.core_app.errors import NotFoundError, PersistenceError, UpstreamProviderError, ValidationError
from slashy.core_app.models.models import Owner, ToolAction, TurnResult
from slashy.core_app.models.text_llm import as_text
from slashy.core_app.services import chat as chat_service
from slashy.core_app.services import connections
from slashy.core_app.services.guests import touch_guest
from slashy.core_app.tools import prompts
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())


def _normalize_integrations(requested: Iterable[str]) -> List[str]:
    seen = []
    for integration in requested or []:
        key = (integration or "").strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen


class ChatTurnOrchestrator:
    """
    One user message in, one assistant message out. Once the user message is
    stored the caller always gets a reply; failures become a degraded reply.
    """

    def __init__(self, db: Session, chat_model, tool_provider: ComposioClient, settings: Settings):
        self.db = db
        self.chat_model = chat_model
        self.tool_provider = tool_provider
        self.settings = settings

    def submit_turn(self, user_text: str, owner: Owner, chat_id: Optional[str] = None,
                    requested_integrations: Sequence[str] = ()) -> TurnResult:
        if not user_text or not user_text.strip():
            raise ValidationError("Bad request: message is required")

        chat_id = self._resolve_chat(chat_id, owner, user_text)
        chat_service.save_message(self.db, chat_id, user_text, "user")
        self._touch_owner(owner)

        tool_names: List[str] = []
        try:
            history = chat_service.get_recent_messages(self.db, chat_id, self.settings.history_limit)
            tools, missing = self._eligible_tools(owner, requested_integrations)
            tool_names = [tool.name for tool in tools]
            reply = self._generate(history, tools, missing)
        except Exception as e:
            logger.error(f"Chat turn failed for chat {chat_id}: {e}", exc_info=True)
            reply = prompts.degraded_reply

        reply = self._save_reply(chat_id, reply)
        return TurnResult(reply_text=reply, chat_id=chat_id, tool_names=tool_names)

    def _resolve_chat(self, chat_id: Optional[str], owner: Owner, user_text: str) -> str:
        if not chat_id:
            chat = chat_service.create_chat(self.db, owner, title=user_text)
            logger.info(f"Created chat {chat.id} for {owner.kind} {owner.id}")
            return chat.id

        chat = chat_service.get_chat(self.db, chat_id)
        if chat is None or not chat_service.chat_belongs_to(chat, owner):
            raise NotFoundError(f"Chat not found: {chat_id}")
        return chat.id

    def _touch_owner(self, owner: Owner) -> None:
        if owner.kind != "guest":
            return
        try:
            touch_guest(self.db, owner.id)
        except PersistenceError as e:
            logger.warning(f"Could not refresh guest activity for {owner.id}: {e.message}")

    def _eligible_tools(self, owner: Owner,
                        requested_integrations: Sequence[str]) -> Tuple[List[ToolAction], List[str]]:
        requested = _normalize_integrations(requested_integrations)
        if not requested:
            return [], []

        completed = connections.get_completed_integrations(self.db, owner.id)
        eligible = [i for i in requested if i in completed]
        missing = [i for i in requested if i not in completed]
        if not eligible:
            return [], missing

        apps = {self.settings.toolkit_for(i) for i in eligible}
        try:
            actions = self.tool_provider.list_actions(owner.id, apps)
        except UpstreamProviderError as e:
            logger.warning(f"Continuing without tools, tool listing failed: {e.message}")
            return [], missing

        return [a for a in actions if a.app_name in apps], missing

    def _generate(self, history, tools: List[ToolAction], missing: List[str]) -> str:
        messages: List[BaseMessage] = [SystemMessage(content=prompts.build_system_prompt(tools, missing))]
        for message in history:
            if message.role == "assistant":
                messages.append(AIMessage(content=message.content))
            else:
                messages.append(HumanMessage(content=message.content))

        if tools:
            result = self.chat_model.invoke(messages, tools=[t.to_declaration() for t in tools])
        else:
            result = self.chat_model.invoke(messages)

        text = as_text(result.content)
        tool_calls = getattr(result, "tool_calls", None) or []
        if tool_calls:
            called = ", ".join(call["name"] for call in tool_calls)
            logger.info(f"Model requested tools that are not executed yet: {called}")
            notice = prompts.function_call_notice.format(tools=called)
            text = f"{text.strip()}\n\n{notice}" if text.strip() else notice

        if not text.strip():
            raise UpstreamProviderError("Empty response from the completion provider", status_code=502)
        return text

    def _save_reply(self, chat_id: str, reply: str) -> str:
        try:
            chat_service.save_message(self.db, chat_id, reply, "assistant")
            return reply
        except PersistenceError:
            if reply == prompts.degraded_reply:
                raise
            logger.error(f"Could not store the reply for chat {chat_id}, storing the degraded reply instead")
            chat_service.save_message(self.db, chat_id, prompts.degraded_reply, "assistant")
            return prompts.degraded_reply
