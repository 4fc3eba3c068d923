"""
Shared fixtures: in-memory storage and rate limiting, fresh singletons per test,
and stub providers that never touch the network.
"""
import json
from typing import Any, List, Optional, Sequence

import pytest

from garage_ai.core import config as config_module
from garage_ai.core import rate_limit as rate_limit_module
from garage_ai.core.rate_limit import InMemoryRateLimiter
from garage_ai.services import store as store_module
from garage_ai.services.access import gate as gate_module
from garage_ai.services.ai import service as service_module
from garage_ai.services.ai.providers import ProviderAdapter
from garage_ai.services.store import InMemoryAIStore
from garage_ai.services.usage import recorder as recorder_module

PROVIDER_ENV_VARS = (
    "MISTRAL_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "ADMIN_API_KEY",
    "REDIS_URL",
)


class DummyProvider(ProviderAdapter):
    """
    Provider stub returning canned responses in order.

    Each response is either a string (returned as raw text), a dict (returned
    as JSON text) or an exception instance (raised).
    """

    def __init__(
        self,
        name: str = "dummy",
        responses: Optional[Sequence[Any]] = None,
        models: Sequence[str] = ("dummy-model",),
        configured: bool = True,
        display_name: Optional[str] = None,
    ):
        super().__init__(api_key="test-key" if configured else None, api_base="http://dummy")
        self.name = name
        self.display_name = display_name or name.capitalize()
        self.models = tuple(models)
        self._responses = list(responses or [])
        self.calls: List[dict] = []

    async def generate(self, system_prompt, user_prompt, model, history=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "model": model,
                "history": history,
            }
        )
        if not self._responses:
            raise RuntimeError("no canned response left")
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Every test starts from memory backends and unconfigured providers."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AI_STORE_BACKEND", "memory")
    monkeypatch.setenv("AI_RATE_LIMIT_BACKEND", "memory")
    monkeypatch.setenv("AI_RATE_LIMIT_PER_MINUTE", "10")
    monkeypatch.setenv("AI_TIMEOUT_MS", "1000")
    monkeypatch.setenv("AI_MAX_RETRIES", "0")

    config_module.reset_settings()
    monkeypatch.setattr(store_module, "_store", None)
    monkeypatch.setattr(rate_limit_module, "_rate_limiter", None)
    monkeypatch.setattr(gate_module, "_access_gate", None)
    monkeypatch.setattr(recorder_module, "_usage_recorder", None)
    monkeypatch.setattr(service_module, "_decision_service", None)
    yield
    config_module.reset_settings()


@pytest.fixture
def memory_store():
    store = InMemoryAIStore()
    store_module.set_store(store)
    return store


@pytest.fixture
def rate_limiter():
    limiter = InMemoryRateLimiter(limit=10, window_seconds=60)
    rate_limit_module.set_rate_limiter(limiter)
    return limiter


@pytest.fixture
def install_providers(memory_store, rate_limiter):
    """Install a decision service wired to the given stub providers."""

    def _install(*providers: ProviderAdapter) -> service_module.DecisionService:
        decision_service = service_module.DecisionService(providers=list(providers))
        service_module.set_decision_service(decision_service)
        return decision_service

    return _install
