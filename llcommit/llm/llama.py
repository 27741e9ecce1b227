"""llama.cpp server client streaming from the /completion endpoint"""

import http.client
import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Iterator

from llcommit import DEFAULT_ENDPOINT
from llcommit.llm.base import (
    LLMClient, CompletionRequest, ContentEvent, StreamData, TransportError, DecodeError,
)
from llcommit.llm.stream import CancelScope, CompletionStream, STREAM_CAPACITY
from llcommit.log import null_logger

EVENT_PREFIX = b"data: "


def decode_event_line(line: bytes) -> ContentEvent | None:
    """Turn one response line into an event. Short lines are keep-alives."""
    line = line.rstrip(b"\r\n")
    if len(line) <= len(EVENT_PREFIX):
        return None
    try:
        data = StreamData.from_dict(json.loads(line[len(EVENT_PREFIX):]))
    except (ValueError, TypeError, OverflowError) as e:
        return ContentEvent.failure(DecodeError(f"unmarshal error: {e}"))
    return ContentEvent.from_data(data)


def abort_response(response: http.client.HTTPResponse) -> None:
    """Shut down the socket under ``response`` so a blocked read returns now."""
    raw = getattr(response.fp, "raw", None)
    sock = getattr(raw, "_sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # already closed by the reader


class LlamaClient(LLMClient):
    """Client for a local llama.cpp server. Requires: llama-server"""

    def __init__(self, url: str | None = None, timeout: float = 15.0,
                 logger: logging.Logger | None = None):
        self.url = url or DEFAULT_ENDPOINT
        self.timeout = timeout
        self.logger = logger or null_logger()

    @property
    def name(self) -> str:
        return f"llama.cpp ({self.url})"

    def _send(self, request: CompletionRequest) -> http.client.HTTPResponse:
        """POST the request and return the open response, or raise TransportError."""
        data = json.dumps(request.to_payload()).encode('utf-8')
        req = urllib.request.Request(self.url, data=data, headers={"Content-Type": "application/json"})

        try:
            response = urllib.request.urlopen(req, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            e.close()
            raise TransportError(f"bad response status: {e.code}")
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise TransportError(f"request timed out after {self.timeout:g}s")
            raise TransportError(f"make request: {e.reason}")
        except (socket.timeout, TimeoutError):
            raise TransportError(f"request timed out after {self.timeout:g}s")
        except (http.client.HTTPException, OSError) as e:
            raise TransportError(f"make request: {e}")

        if response.status != 200:
            response.close()
            raise TransportError(f"bad response status: {response.status}")
        return response

    def _decode(self, response: http.client.HTTPResponse) -> Iterator[ContentEvent]:
        with response:
            try:
                for line in response:
                    event = decode_event_line(line)
                    if event is not None:
                        yield event
            except (socket.timeout, TimeoutError):
                yield ContentEvent.failure(TransportError(f"no data from model within {self.timeout:g}s"))
            except (http.client.HTTPException, OSError, ValueError) as e:
                yield ContentEvent.failure(TransportError(f"read error: {e}"))

    def open_stream(self, request: CompletionRequest, scope: CancelScope,
                    capacity: int = STREAM_CAPACITY) -> CompletionStream:
        self.logger.debug("Opening completion stream to %s", self.url)
        response = self._send(request)
        return CompletionStream(self._decode(response), scope.child(), capacity=capacity,
                                logger=self.logger, abort=lambda: abort_response(response))
