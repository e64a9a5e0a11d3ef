from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from slashy.core_app.api_clients.gemini_client import GeminiClient
from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())


def as_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for item in content or []:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("text"):
            parts.append(item["text"])
    return "".join(parts)


def to_gemini_contents(messages: List[BaseMessage]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """Split LangChain messages into a system instruction and Gemini `contents`."""
    system_parts = []
    contents = []
    for message in messages:
        text = as_text(message.content)
        if isinstance(message, SystemMessage):
            system_parts.append(text)
        elif isinstance(message, HumanMessage):
            contents.append({"role": "user", "parts": [{"text": text}]})
        elif isinstance(message, AIMessage):
            contents.append({"role": "model", "parts": [{"text": text}]})
        else:
            logger.debug(f"Skipping unsupported message type: {message.type}")
    system = "\n\n".join(p for p in system_parts if p) or None
    return system, contents


def parse_candidate(data: Dict[str, Any]) -> AIMessage:
    candidates = data.get("candidates") or []
    if not candidates:
        logger.error(f"Invalid Gemini response: {data}")
        raise UpstreamProviderError("Invalid response from Gemini API", status_code=502, provider="Gemini")

    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    texts = [p["text"] for p in parts if p.get("text")]
    calls = [p["functionCall"] for p in parts if p.get("functionCall")]

    if not texts and not calls:
        logger.error(f"Gemini returned no text or function call (finishReason={candidate.get('finishReason')})")
        raise UpstreamProviderError("Invalid response from Gemini API", status_code=502, provider="Gemini")

    tool_calls = [
        {"name": call["name"], "args": call.get("args") or {}, "id": str(uuid4()), "type": "tool_call"}
        for call in calls
    ]
    return AIMessage(
        content="".join(texts),
        tool_calls=tool_calls,
        response_metadata={"finish_reason": candidate.get("finishReason")},
    )


class GeminiChatModel(BaseChatModel):
    """
    Chat model over the Gemini generateContent API.
    Pass function declarations as `tools=[...]` to invoke(); function calls come back as AIMessage.tool_calls.
    """
    client: GeminiClient

    @property
    def _identifying_params(self):
        return {"model": self.client.model, "api_url": self.client.base_url}

    @property
    def _llm_type(self):
        return "gemini"

    def _generate(
            self,
            messages,
            stop=None,
            run_manager=None,
            tools: Optional[List[Dict[str, Any]]] = None,
            **kwargs
    ) -> ChatResult:
        system, contents = to_gemini_contents(messages)
        if not contents:
            raise ValueError("No user or assistant messages to send")

        data = self.client.generate_content(contents, system_instruction=system, function_declarations=tools)
        message = parse_candidate(data)
        logger.info(f"[LLM] Response: {len(message.content)} chars, {len(message.tool_calls)} function calls")

        return ChatResult(generations=[ChatGeneration(message=message)])
