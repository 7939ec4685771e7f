"""
LLM client factory.

Builds pydantic-ai backed chat clients for the configured provider. Supports
Ollama and other OpenAI-compatible endpoints, OpenAI, Anthropic and Gemini.
"""

import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from query_agent.core.errors import ensure_not_cancelled
from query_agent.core.models import ChatMessage

OPENAI_COMPATIBLE_PROVIDERS = {"ollama", "openai-compatible", "vllm"}
HOSTED_PROVIDERS = {
    "openai": ("openai", "OPENAI_API_KEY"),
    "anthropic": ("anthropic", "ANTHROPIC_API_KEY"),
    "gemini": ("google-gla", "GEMINI_API_KEY"),
}
SUPPORTED_PROVIDERS = OPENAI_COMPATIBLE_PROVIDERS | set(HOSTED_PROVIDERS)


def to_model_messages(
    messages: Sequence[ChatMessage],
) -> Tuple[List[str], List[ModelMessage], str]:
    """
    Split chat messages into what a pydantic-ai run expects.

    Returns:
        (system prompts, message history, user prompt). Trailing user turns
        form the prompt; earlier turns become the history, which carries the
        system prompts itself when it is not empty.
    """
    system = [message.content for message in messages if message.role == "system"]
    turns = [message for message in messages if message.role != "system"]

    prompt_parts: List[str] = []
    while turns and turns[-1].role != "assistant":
        prompt_parts.insert(0, turns.pop().content)

    history: List[ModelMessage] = []
    for turn in turns:
        if turn.role == "assistant":
            history.append(ModelResponse(parts=[TextPart(content=turn.content)]))
        elif history and isinstance(history[-1], ModelRequest):
            history[-1] = ModelRequest(parts=[*history[-1].parts, UserPromptPart(content=turn.content)])
        else:
            history.append(ModelRequest(parts=[UserPromptPart(content=turn.content)]))

    if history and system:
        system_parts = [SystemPromptPart(content=content) for content in system]
        first = history[0]
        if isinstance(first, ModelRequest):
            history[0] = ModelRequest(parts=[*system_parts, *first.parts])
        else:
            history.insert(0, ModelRequest(parts=system_parts))

    return system, history, "\n\n".join(prompt_parts)


class PydanticAIChatClient:
    """IModelClient that runs one pydantic-ai agent call per completion."""

    def __init__(self, model: Any, model_settings: Optional[Dict[str, Any]] = None):
        self.model = model
        self.model_settings = model_settings or {}

    def _create_agent(self, system_prompt: Sequence[str]) -> Agent:
        return Agent(
            model=self.model,
            system_prompt=tuple(system_prompt),
            model_settings=self.model_settings,
        )

    async def complete(self, messages: Sequence[ChatMessage], cancel_event=None) -> str:
        ensure_not_cancelled(cancel_event)
        system, history, prompt = to_model_messages(messages)
        agent = self._create_agent(system)
        result = await agent.run(prompt, message_history=history or None)
        return result.output


class LLMClientFactory:
    """
    Creates chat clients for one provider/model pair.

    Reads configuration from environment variables when not given:
    - LLM_MODEL: Model name
    - LLM_API_KEY or OPENAI_API_KEY: API key
    - LLM_BASE_URL: Base URL for OpenAI-compatible APIs
    """

    def __init__(
        self,
        provider: str = "ollama",
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model_settings: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize LLM client factory.

        Args:
            provider: ollama, openai-compatible, vllm, openai, anthropic or gemini
            model_name: Name of the model (e.g. "qwen3:4b", "gpt-4o")
            api_key: Provider API key; optional for local OpenAI-compatible servers
            base_url: Endpoint of an OpenAI-compatible server (e.g. "http://localhost:11434")
            model_settings: pydantic-ai model settings (temperature, timeout, ...)

        Raises:
            ValueError: If the provider is unknown, the model name is missing,
                or a hosted provider has no API key
        """
        self.provider = provider.lower()
        model_name = model_name or os.getenv("LLM_MODEL")
        api_key = api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
        base_url = base_url or os.getenv("LLM_BASE_URL")

        if self.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported model provider: {provider}")
        if not model_name:
            raise ValueError("model_name is required (provide as parameter or set LLM_MODEL env var)")

        self.model_name = model_name
        self.model_settings = model_settings or {"temperature": 0, "top_p": 1.0}
        self.base_url: Optional[str] = None

        if self.provider in OPENAI_COMPATIBLE_PROVIDERS:
            if not base_url:
                raise ValueError(f"base_url is required for provider {self.provider}")
            # OpenAI-compatible servers are served under /v1
            normalized_base_url = base_url.rstrip("/")
            if not normalized_base_url.endswith("/v1"):
                normalized_base_url = f"{normalized_base_url}/v1"
            self.base_url = normalized_base_url

            provider_kwargs = {"base_url": normalized_base_url}
            if api_key:
                provider_kwargs["api_key"] = api_key
            self.model = OpenAIModel(model_name=model_name, provider=OpenAIProvider(**provider_kwargs))
        elif not api_key:
            raise ValueError(f"api_key is required for provider {self.provider}")
        else:
            prefix, env_name = HOSTED_PROVIDERS[self.provider]
            # pydantic-ai reads hosted provider keys from the environment
            os.environ[env_name] = api_key
            self.model = model_name if ":" in model_name else f"{prefix}:{model_name}"

    def create_client(self) -> PydanticAIChatClient:
        return PydanticAIChatClient(self.model, self.model_settings)
