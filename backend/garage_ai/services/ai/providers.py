"""
Provider adapters for text generation.

Each adapter wraps one external service behind the same call:
``generate(system_prompt, user_prompt, model) -> raw text``.

Design constraints:
- Do NOT use vendor SDKs; plain httpx against each public HTTP API
- An adapter with an absent or malformed credential is "not configured" and is
  skipped by the orchestrator without any network call
- Adapters raise, they never return an error value: httpx exceptions propagate
  as-is and non-2xx answers become ProviderError carrying the status code
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from garage_ai.core.config import Settings, get_settings
from garage_ai.core.errors import ProviderError
from garage_ai.core.logging import get_logger

logger = get_logger(__name__)

ChatMessage = Dict[str, str]


class ProviderAdapter:
    """Base class for one text-generation integration."""

    name: str = "provider"
    display_name: str = "Provider"
    models: Tuple[str, ...] = ()

    def __init__(
        self,
        api_key: Optional[str],
        api_base: str,
        timeout_seconds: float = 30.0,
        temperature: float = 0.3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key.strip() if api_key else None
        self.api_base = api_base.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _post(
        self,
        url: str,
        json_payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST JSON and return the decoded body; non-2xx raises ProviderError."""
        request_headers = {"Content-Type": "application/json"}
        if headers:
            request_headers.update(headers)

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(
                url, headers=request_headers, params=params, json=json_payload
            )

        if response.status_code >= 400:
            raise ProviderError(
                self.name,
                f"{self.display_name} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(self.name, f"{self.display_name} returned a non-JSON body") from exc

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> str:
        raise NotImplementedError


def _content_to_text(content: Any) -> str:
    """Chat APIs may return the message content as a list of text chunks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for chunk in content:
            if isinstance(chunk, str):
                parts.append(chunk)
            elif isinstance(chunk, dict):
                parts.append(str(chunk.get("text") or ""))
        return "".join(parts)
    return ""


class ChatCompletionsProvider(ProviderAdapter):
    """OpenAI-style ``/chat/completions`` API, shared by Mistral and OpenAI."""

    def build_messages(
        self,
        system_prompt: str,
        user_prompt: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> List[ChatMessage]:
        messages: List[ChatMessage] = [{"role": "system", "content": system_prompt}]
        for message in history or ():
            messages.append({"role": message["role"], "content": message["content"]})
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": self.build_messages(system_prompt, user_prompt, history),
            "temperature": self.temperature,
            # JSON mode: both APIs accept the same response_format switch.
            "response_format": {"type": "json_object"},
        }
        data = await self._post(
            f"{self.api_base}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        choices = data.get("choices") or []
        message = (choices[0] or {}).get("message") if choices else None
        text = _content_to_text((message or {}).get("content"))
        if not text.strip():
            raise ProviderError(self.name, f"{self.display_name}: empty response")
        return text


class MistralProvider(ChatCompletionsProvider):
    name = "mistral"
    display_name = "Mistral"
    models = ("mistral-large-latest", "mistral-medium-latest")


class OpenAIProvider(ChatCompletionsProvider):
    name = "openai"
    display_name = "OpenAI"
    models = ("gpt-3.5-turbo",)

    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key.startswith("sk-")


class GeminiProvider(ProviderAdapter):
    """
    Google Generative Language API (``models/{model}:generateContent``).

    Gemini gets a single user turn: system prompt, prior conversation and the
    question are concatenated.
    """

    name = "gemini"
    display_name = "Gemini"
    models = ("gemini-1.5-flash", "gemini-1.5-pro", "gemini-pro")

    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key.startswith("AIza")

    @staticmethod
    def build_prompt(
        system_prompt: str,
        user_prompt: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> str:
        conversation = ""
        if history:
            turns = "\n".join(
                f"{'User' if m['role'] == 'user' else 'Assistant'}: {m['content']}"
                for m in history
            )
            conversation = f"Previous conversation:\n{turns}\n\nLatest user message: "
        return f"{system_prompt}\n\n---\n{conversation}{user_prompt}\n\nJSON only."

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> str:
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": self.build_prompt(system_prompt, user_prompt, history)}],
                }
            ],
            "generationConfig": {"temperature": self.temperature},
        }
        data = await self._post(
            f"{self.api_base}/models/{model}:generateContent",
            payload,
            params={"key": self.api_key or ""},
        )

        candidates = data.get("candidates") or []
        parts = ((candidates[0] or {}).get("content") or {}).get("parts") if candidates else None
        text = _content_to_text(parts or [])
        if not text.strip():
            raise ProviderError(self.name, f"{self.display_name}: empty response")
        return text


def build_default_providers(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[ProviderAdapter]:
    """Providers in preference order: Mistral, then Gemini, then OpenAI."""
    settings = settings or get_settings()
    timeout_seconds = settings.ai_timeout_ms / 1000.0
    common = {
        "timeout_seconds": timeout_seconds,
        "temperature": settings.ai_temperature,
        "transport": transport,
    }
    providers: List[ProviderAdapter] = [
        MistralProvider(settings.mistral_api_key, settings.mistral_api_base, **common),
        GeminiProvider(settings.gemini_api_key, settings.gemini_api_base, **common),
        OpenAIProvider(settings.openai_api_key, settings.openai_api_base, **common),
    ]
    logger.debug(
        "ai_providers_built",
        configured=[p.name for p in providers if p.is_configured()],
    )
    return providers
