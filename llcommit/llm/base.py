"""LLM Base Classes and Shared Code"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from llcommit.llm.stream import CancelScope, CompletionStream


@dataclass(frozen=True)
class CompletionRequest:
    """Subset of the options accepted by llama-server's /completion."""
    prompt: str
    temperature: float = 0.5
    n_predict: int = 512  # -1 means no limit
    stream: bool = True

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["stream"] = True
        return payload


@dataclass
class StreamData:
    """One 'data:' record of a streamed completion."""
    content: str = ""
    stop: bool = False
    id_slot: int = 0
    multimodal: bool = False
    index: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'StreamData':
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        content = data.get("content", "")
        if not isinstance(content, str):
            raise ValueError(f"content must be a string, got {type(content).__name__}")
        return cls(
            content=content,
            stop=bool(data.get("stop", False)),
            id_slot=int(data.get("id_slot", 0) or 0),
            multimodal=bool(data.get("multimodal", False)),
            index=int(data.get("index", 0) or 0),
        )


@dataclass(frozen=True)
class ContentEvent:
    """A decoded increment of model output, or the error that replaced it."""
    content: str = ""
    stop: bool = False
    error: Exception | None = None

    @classmethod
    def from_data(cls, data: StreamData) -> 'ContentEvent':
        return cls(content=data.content, stop=data.stop)

    @classmethod
    def failure(cls, error: Exception) -> 'ContentEvent':
        return cls(error=error)


class LLMError(Exception):
    """Raised when LLM operations fail."""
    pass


class TransportError(LLMError):
    """The request could not be sent, was refused, or the body broke off."""
    pass


class DecodeError(LLMError):
    """A streamed event line was not a valid record."""
    pass


class StreamCancelled(LLMError):
    """The session was cancelled while the stream was still running."""
    pass


class LLMClient(ABC):
    """Abstract base for streaming completion clients."""

    timeout: float

    @abstractmethod
    def open_stream(self, request: CompletionRequest, scope: 'CancelScope') -> 'CompletionStream':
        """Send the request and return a live stream, or raise TransportError."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
