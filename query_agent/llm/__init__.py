"""Language model clients: pydantic-ai factory, offline responder and resilience wrapper."""

from query_agent.llm.client_factory import LLMClientFactory, PydanticAIChatClient
from query_agent.llm.offline_responder import OfflineResponder
from query_agent.llm.resilient_client import ModelClientProvider, ResilientModelClient

__all__ = [
    "LLMClientFactory",
    "ModelClientProvider",
    "OfflineResponder",
    "PydanticAIChatClient",
    "ResilientModelClient",
]
