"""Claude (Anthropic) streaming client"""

import logging
import os
from typing import Iterator

from llcommit.llm.base import LLMClient, CompletionRequest, ContentEvent, LLMError, TransportError
from llcommit.llm.stream import CancelScope, CompletionStream, STREAM_CAPACITY
from llcommit.log import null_logger
from llcommit.prompts import SYSTEM_PROMPT


class ClaudeClient(LLMClient):
    """Claude API client. Requires ANTHROPIC_API_KEY env var."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, model: str | None = None, timeout: float = 15.0,
                 api_key: str | None = None, logger: logging.Logger | None = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout
        self.logger = logger or null_logger()

        if not self.api_key:
            raise LLMError(
                "No API key found. Set ANTHROPIC_API_KEY environment variable:\n"
                "  export ANTHROPIC_API_KEY='your-key-here'"
            )

        from anthropic import Anthropic
        self._client = Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)

    @property
    def name(self) -> str:
        return f"Claude ({self.model})"

    def _decode(self, events) -> Iterator[ContentEvent]:
        from anthropic import APIError

        try:
            for event in events:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    yield ContentEvent(content=event.delta.text)
                elif event.type == "message_stop":
                    yield ContentEvent(stop=True)
        except APIError as e:
            yield ContentEvent.failure(TransportError(f"Claude API error: {e.message}"))
        finally:
            events.close()

    def open_stream(self, request: CompletionRequest, scope: CancelScope,
                    capacity: int = STREAM_CAPACITY) -> CompletionStream:
        from anthropic import APIConnectionError, APIStatusError, AuthenticationError

        self.logger.debug("Opening Claude stream with %s", self.model)
        try:
            events = self._client.messages.create(
                model=self.model,
                max_tokens=request.n_predict if request.n_predict > 0 else 1000,
                temperature=request.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": request.prompt}],
                stream=True,
            )
        except AuthenticationError:
            raise TransportError("Invalid API key. Check your ANTHROPIC_API_KEY.")
        except APIStatusError as e:
            raise TransportError(f"bad response status: {e.status_code}")
        except APIConnectionError as e:
            raise TransportError(f"Claude API unreachable: {e.message}")

        return CompletionStream(self._decode(events), scope.child(), capacity=capacity, logger=self.logger)
