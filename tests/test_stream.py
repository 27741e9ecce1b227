"""
Tests for the completion stream: channel, cancellation and the llama.cpp client.

The llama.cpp tests talk to a throwaway HTTP server on localhost. Run with:
    pytest tests/test_stream.py -v
"""

import json
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import SimpleNamespace

import pytest

from llcommit.llm import (
    CancelScope, Channel, ChannelClosed, CompletionRequest, CompletionStream, ContentEvent,
    ClaudeClient, DecodeError, LlamaClient, LLMError, StreamCancelled, StreamData, TransportError,
    STREAM_CAPACITY, get_client,
)
from llcommit.llm.llama import decode_event_line


def data_line(**fields) -> bytes:
    return b"data: " + json.dumps(fields).encode() + b"\n"


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def drain(stream, timeout=3.0) -> list[ContentEvent]:
    events = []
    while True:
        event = stream.next_event(timeout=timeout)
        if event is None:
            return events
        events.append(event)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

class _CompletionHandler(BaseHTTPRequestHandler):
    # HTTP/1.0 without Content-Length: the body ends when the connection closes
    protocol_version = "HTTP/1.0"

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        self.server.requests.append(json.loads(self.rfile.read(length)))

        self.send_response(self.server.status)
        self.send_header("Content-Type", "text/event-stream")
        self.end_headers()
        if self.server.status != 200:
            return

        for line in self.server.lines:
            self.wfile.write(line)
            self.wfile.flush()
        if self.server.hold is not None:
            self.server.hold.wait(5)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def llama_server():
    """Return a factory that serves canned stream lines and yields the URL."""
    servers = []

    def _serve(lines=(), status=200, hold=False):
        server = ThreadingHTTPServer(("127.0.0.1", 0), _CompletionHandler)
        server.daemon_threads = True
        server.lines = list(lines)
        server.status = status
        server.hold = threading.Event() if hold else None
        server.requests = []
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address
        return server, f"http://{host}:{port}/completion"

    yield _serve

    for server in servers:
        if server.hold is not None:
            server.hold.set()
        server.shutdown()
        server.server_close()


@pytest.fixture
def request_():
    return CompletionRequest(prompt="diff --git a/x b/x")


@pytest.fixture
def unused_port():
    sock = socket.socket()
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


# ---------------------------------------------------------------------------
# CancelScope
# ---------------------------------------------------------------------------

class TestCancelScope:

    def test_starts_active(self):
        assert not CancelScope().cancelled

    def test_cancel_propagates_to_children(self):
        root = CancelScope()
        child = root.child()
        grandchild = child.child()
        root.cancel()
        assert child.cancelled
        assert grandchild.cancelled

    def test_child_cancel_leaves_parent_active(self):
        root = CancelScope()
        child = root.child()
        child.cancel()
        assert child.cancelled
        assert not root.cancelled

    def test_on_cancel_runs_once(self):
        scope = CancelScope()
        calls = []
        scope.on_cancel(lambda: calls.append("closed"))
        scope.cancel()
        scope.cancel()
        assert calls == ["closed"]

    def test_on_cancel_after_cancel_runs_immediately(self):
        scope = CancelScope()
        scope.cancel()
        calls = []
        scope.on_cancel(lambda: calls.append("closed"))
        assert calls == ["closed"]

    def test_parent_cancel_runs_child_callbacks(self):
        root = CancelScope()
        child = root.child()
        calls = []
        child.on_cancel(lambda: calls.append("closed"))
        root.cancel()
        assert calls == ["closed"]

    def test_child_cancel_skips_parent_callbacks(self):
        root = CancelScope()
        calls = []
        root.on_cancel(lambda: calls.append("root"))
        root.child().cancel()
        assert calls == []


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

class TestChannel:

    def test_preserves_order(self):
        channel = Channel(capacity=3)
        scope = CancelScope()
        for item in ("a", "b", "c"):
            assert channel.send(item, scope)
        assert [channel.receive(0) for _ in range(3)] == ["a", "b", "c"]

    def test_receive_times_out_when_empty(self):
        with pytest.raises(TimeoutError):
            Channel().receive(timeout=0.01)

    def test_receive_after_close_drains_then_raises(self):
        channel = Channel()
        channel.send("last", CancelScope())
        channel.close()
        assert channel.receive(0) == "last"
        with pytest.raises(ChannelClosed):
            channel.receive(0)

    def test_close_is_idempotent(self):
        channel = Channel()
        channel.close()
        channel.close()
        assert channel.closed

    def test_send_after_close_is_refused(self):
        channel = Channel()
        channel.close()
        assert channel.send("x", CancelScope()) is False
        assert len(channel) == 0

    def test_full_channel_send_gives_up_on_cancel(self):
        channel = Channel(capacity=1)
        scope = CancelScope()
        channel.send("first", scope)

        result = {}
        sender = threading.Thread(target=lambda: result.setdefault("sent", channel.send("second", scope)))
        sender.start()
        time.sleep(0.1)
        assert sender.is_alive()  # blocked on capacity

        scope.cancel()
        sender.join(1)
        assert not sender.is_alive()
        assert result["sent"] is False
        assert len(channel) == 1

    def test_full_channel_send_resumes_after_receive(self):
        channel = Channel(capacity=1)
        scope = CancelScope()
        channel.send("first", scope)

        sender = threading.Thread(target=channel.send, args=("second", scope))
        sender.start()
        assert channel.receive(1) == "first"
        sender.join(1)
        assert channel.receive(1) == "second"

    def test_push_ignores_capacity(self):
        channel = Channel(capacity=1)
        channel.send("a", CancelScope())
        channel.push("b")
        assert len(channel) == 2


# ---------------------------------------------------------------------------
# CompletionStream over an in-memory event source
# ---------------------------------------------------------------------------

class TestCompletionStream:

    def test_iterates_events_in_order(self):
        events = [ContentEvent(content=c) for c in "abc"] + [ContentEvent(stop=True)]
        stream = CompletionStream(iter(events), CancelScope())
        assert list(stream) == events

    def test_empty_source_closes_immediately(self):
        stream = CompletionStream(iter([]), CancelScope())
        assert stream.next_event(timeout=1) is None

    def test_backpressure_holds_channel_at_capacity(self):
        events = [ContentEvent(content=str(i)) for i in range(30)]
        stream = CompletionStream(iter(events), CancelScope(), capacity=STREAM_CAPACITY)

        assert wait_until(lambda: len(stream.channel) == STREAM_CAPACITY)
        time.sleep(0.1)
        assert len(stream.channel) == STREAM_CAPACITY
        assert stream.alive

        assert [e.content for e in drain(stream)] == [str(i) for i in range(30)]

    def test_close_cancels_blocked_worker(self):
        events = (ContentEvent(content="x") for _ in range(100))
        stream = CompletionStream(events, CancelScope(), capacity=2)
        assert wait_until(lambda: len(stream.channel) == 2)

        stream.close(timeout=1)
        assert not stream.alive

        remaining = drain(stream)
        assert isinstance(remaining[-1].error, StreamCancelled)
        assert stream.next_event(timeout=0) is None

    def test_source_is_closed_when_worker_stops(self):
        closed = threading.Event()

        def source():
            try:
                while True:
                    yield ContentEvent(content="x")
            finally:
                closed.set()

        stream = CompletionStream(source(), CancelScope(), capacity=1)
        stream.close(timeout=1)
        assert closed.wait(1)

    def test_source_failure_becomes_transport_error(self):
        def source():
            yield ContentEvent(content="Fix")
            raise RuntimeError("decoder blew up")

        stream = CompletionStream(source(), CancelScope())
        events = drain(stream)

        assert events[0].content == "Fix"
        assert isinstance(events[-1].error, TransportError)
        assert "decoder blew up" in str(events[-1].error)
        assert stream.channel.closed
        assert wait_until(lambda: not stream.alive)

    def test_abort_runs_on_cancel(self):
        aborted = threading.Event()
        scope = CancelScope()
        stream = CompletionStream(iter([]), scope, abort=aborted.set)
        assert not aborted.is_set()
        scope.cancel()
        assert aborted.is_set()
        assert stream.next_event(timeout=1) is None


# ---------------------------------------------------------------------------
# Event line decoding
# ---------------------------------------------------------------------------

class TestDecodeEventLine:

    def test_content_event(self):
        event = decode_event_line(data_line(content="Fix", stop=False))
        assert event == ContentEvent(content="Fix", stop=False)

    def test_stop_event(self):
        event = decode_event_line(data_line(content="", stop=True, id_slot=0, multimodal=False, index=0))
        assert event.stop is True
        assert event.content == ""

    def test_crlf_terminated(self):
        event = decode_event_line(b'data: {"content": "a"}\r\n')
        assert event.content == "a"

    @pytest.mark.parametrize("line", [b"\n", b"", b"data: \n", b"data:\n", b": ping"])
    def test_short_lines_skipped(self, line):
        assert decode_event_line(line) is None

    @pytest.mark.parametrize("line", [
        b"data: {not json\n",
        b'data: ["a", "b"]\n',
        b'data: {"content": 5}\n',
    ])
    def test_bad_record_is_decode_error(self, line):
        event = decode_event_line(line)
        assert isinstance(event.error, DecodeError)
        assert "unmarshal error" in str(event.error)

    def test_unknown_fields_ignored(self):
        event = decode_event_line(data_line(content="a", tokens_predicted=3, timings={}))
        assert event.content == "a"

    def test_out_of_range_number_is_decode_error(self):
        event = decode_event_line(b'data: {"content": "x", "index": Infinity}\n')
        assert isinstance(event.error, DecodeError)


class TestStreamData:

    def test_defaults_for_missing_fields(self):
        data = StreamData.from_dict({})
        assert data == StreamData()

    def test_rejects_non_object(self):
        with pytest.raises(ValueError):
            StreamData.from_dict([1, 2])


class TestCompletionRequest:

    def test_payload_always_streams(self):
        payload = CompletionRequest(prompt="p", stream=False).to_payload()
        assert payload == {"prompt": "p", "temperature": 0.5, "n_predict": 512, "stream": True}


# ---------------------------------------------------------------------------
# LlamaClient against a local server
# ---------------------------------------------------------------------------

class TestLlamaClient:

    def test_streams_fix_bug(self, llama_server, request_):
        server, url = llama_server([
            data_line(content="Fix", stop=False),
            data_line(content=" bug", stop=False),
            data_line(content="", stop=True),
        ])
        stream = LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope())
        events = drain(stream)

        assert "".join(e.content for e in events) == "Fix bug"
        assert events[-1].stop is True
        assert all(e.error is None for e in events)

    def test_posts_completion_payload(self, llama_server, request_):
        server, url = llama_server([data_line(content="", stop=True)])
        drain(LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope()))

        assert server.requests == [{
            "prompt": "diff --git a/x b/x",
            "temperature": 0.5,
            "n_predict": 512,
            "stream": True,
        }]

    def test_keepalive_lines_skipped(self, llama_server, request_):
        server, url = llama_server([
            b"\n",
            data_line(content="a"),
            b"data: \n",
            b"\n",
            data_line(content="b", stop=True),
        ])
        events = drain(LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope()))
        assert [e.content for e in events] == ["a", "b"]

    def test_decode_error_does_not_end_stream(self, llama_server, request_):
        server, url = llama_server([
            data_line(content="a"),
            b"data: {oops\n",
            data_line(content="b", stop=True),
        ])
        events = drain(LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope()))

        assert len(events) == 3
        assert events[0].content == "a"
        assert isinstance(events[1].error, DecodeError)
        assert events[2].content == "b"

    def test_error_status_raises_before_streaming(self, llama_server, request_):
        server, url = llama_server(status=500)
        threads_before = threading.active_count()

        with pytest.raises(TransportError, match="bad response status: 500"):
            LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope())

        # no worker was started for the failed request
        assert wait_until(lambda: threading.active_count() <= threads_before)

    def test_connection_refused_raises(self, unused_port, request_):
        client = LlamaClient(url=f"http://127.0.0.1:{unused_port}/completion", timeout=2)
        with pytest.raises(TransportError, match="make request"):
            client.open_stream(request_, CancelScope())

    def test_cancel_mid_stream(self, llama_server, request_):
        server, url = llama_server([data_line(content="a"), data_line(content="b")], hold=True)
        scope = CancelScope()
        stream = LlamaClient(url=url, timeout=1).open_stream(request_, scope)

        assert stream.next_event(timeout=3).content == "a"
        scope.cancel()

        events = drain(stream)
        assert isinstance(events[-1].error, StreamCancelled)
        assert stream.channel.closed
        assert wait_until(lambda: not stream.alive)

    def test_cancel_interrupts_stalled_read(self, llama_server, request_):
        server, url = llama_server([data_line(content="a")], hold=True)
        scope = CancelScope()
        stream = LlamaClient(url=url, timeout=30).open_stream(request_, scope)
        assert stream.next_event(timeout=3).content == "a"

        started = time.monotonic()
        scope.cancel()
        events = drain(stream, timeout=2)

        assert time.monotonic() - started < 0.5
        assert isinstance(events[-1].error, StreamCancelled)
        assert stream.channel.closed
        assert wait_until(lambda: not stream.alive, timeout=0.5)

    def test_out_of_range_record_does_not_end_stream(self, llama_server, request_):
        server, url = llama_server([
            data_line(content="Fix"),
            b'data: {"content": "x", "index": Infinity}\n',
            data_line(content=" bug", stop=True),
        ])
        events = drain(LlamaClient(url=url, timeout=5).open_stream(request_, CancelScope()))

        assert events[0].content == "Fix"
        assert isinstance(events[1].error, DecodeError)
        assert events[2].content == " bug"
        assert len(events) == 3

    def test_silent_server_times_out(self, llama_server, request_):
        server, url = llama_server([data_line(content="a")], hold=True)
        stream = LlamaClient(url=url, timeout=0.3).open_stream(request_, CancelScope())

        events = drain(stream)
        assert events[0].content == "a"
        assert isinstance(events[-1].error, TransportError)

    def test_default_url(self):
        assert LlamaClient().url == "http://127.0.0.1:8080/completion"


# ---------------------------------------------------------------------------
# ClaudeClient with a fake SDK stream
# ---------------------------------------------------------------------------

class _FakeSDKStream:

    def __init__(self, events):
        self._events = events
        self.closed = False

    def __iter__(self):
        return iter(self._events)

    def close(self):
        self.closed = True


def _delta(text):
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


class TestClaudeClient:

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(LLMError, match="ANTHROPIC_API_KEY"):
            ClaudeClient()

    def test_streams_text_deltas(self, monkeypatch, request_):
        client = ClaudeClient(api_key="test-key")
        sdk_stream = _FakeSDKStream([
            SimpleNamespace(type="message_start"),
            _delta("Fix"),
            _delta(" bug"),
            SimpleNamespace(type="message_stop"),
        ])
        calls = []

        def fake_create(**kwargs):
            calls.append(kwargs)
            return sdk_stream

        monkeypatch.setattr(client._client.messages, "create", fake_create)
        events = drain(client.open_stream(request_, CancelScope()))

        assert "".join(e.content for e in events) == "Fix bug"
        assert events[-1].stop is True
        assert calls[0]["stream"] is True
        assert calls[0]["messages"] == [{"role": "user", "content": request_.prompt}]
        assert sdk_stream.closed


class TestGetClient:

    def test_llama_is_default(self):
        client = get_client(endpoint="http://localhost:9999/completion")
        assert isinstance(client, LlamaClient)
        assert client.url == "http://localhost:9999/completion"

    def test_unknown_provider(self):
        with pytest.raises(LLMError, match="Unknown provider"):
            get_client("gpt4")
