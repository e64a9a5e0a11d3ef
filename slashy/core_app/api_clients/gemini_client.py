# slashy/core_app/api_clients/gemini_client.py
from typing import Any, Dict, List, Optional

import requests

from slashy.core_app.api_clients.http import parse_json, send_request
from slashy.core_app.config import Settings
from slashy.core_app.errors import UpstreamProviderError
from slashy.core_app.tools.setup_logger import setup_logger

logger = setup_logger(__name__.upper())

SERVICE = "Gemini"


class GeminiClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.api_key = settings.gemini_api_key
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.model = settings.gemini_model
        self.temperature = settings.gemini_temperature
        self.max_output_tokens = settings.gemini_max_output_tokens
        self.timeout = settings.http_timeout
        self.max_attempts = settings.http_max_retries
        self.session = session or requests.Session()

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def generate_content(
            self,
            contents: List[Dict[str, Any]],
            system_instruction: Optional[str] = None,
            function_declarations: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamProviderError("Gemini API key not configured", status_code=500, provider=SERVICE)

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": self.max_output_tokens,
                "temperature": self.temperature,
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if function_declarations:
            body["tools"] = [{"functionDeclarations": function_declarations}]

        logger.info(f"[LLM] Request to {self.model} ({len(contents)} messages, "
                    f"{len(function_declarations or [])} tools)")

        # Generation has no side effects on the provider, so transient failures are retried.
        response = send_request(
            self.session, "POST", self.api_url,
            service=SERVICE, timeout=self.timeout, max_attempts=self.max_attempts,
            headers={"Content-Type": "application/json"}, params={"key": self.api_key}, json=body,
        )
        return parse_json(response, SERVICE)
