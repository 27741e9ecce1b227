"""LLM Client Package"""

import logging

from llcommit.llm.base import (
    LLMClient, LLMError, TransportError, DecodeError, StreamCancelled,
    CompletionRequest, ContentEvent, StreamData,
)
from llcommit.llm.claude import ClaudeClient
from llcommit.llm.llama import LlamaClient
from llcommit.llm.stream import CancelScope, Channel, ChannelClosed, CompletionStream, STREAM_CAPACITY

PROVIDERS = {
    "llama": LlamaClient,
    "claude": ClaudeClient,
}


def get_client(provider: str = "llama", endpoint: str | None = None, model: str | None = None,
               timeout: float = 15.0, logger: logging.Logger | None = None) -> LLMClient:
    """Get a streaming client. Provider can be 'llama' or 'claude'."""
    if provider not in PROVIDERS:
        raise LLMError(f"Unknown provider: {provider}. Use 'llama' or 'claude'.")

    if provider == "claude":
        return ClaudeClient(model=model, timeout=timeout, logger=logger)
    return LlamaClient(url=endpoint, timeout=timeout, logger=logger)


__all__ = [
    "LLMClient",
    "LLMError",
    "TransportError",
    "DecodeError",
    "StreamCancelled",
    "CompletionRequest",
    "ContentEvent",
    "StreamData",
    "LlamaClient",
    "ClaudeClient",
    "CancelScope",
    "Channel",
    "ChannelClosed",
    "CompletionStream",
    "STREAM_CAPACITY",
    "PROVIDERS",
    "get_client",
]
