"""Tests for the websocket transport and disconnect classification."""

import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest
from websockets.exceptions import ConnectionClosed, InvalidStatusCode
from websockets.frames import Close

import stt_session.client.internal.transport as transport_module
from stt_session.client import (
    BinaryMessageReceived,
    TextMessageReceived,
    TransportConnected,
    TransportDisconnected,
    TransportFailure,
    WebSocketTransport,
    build_recognize_url,
    is_authentication_failure,
    is_disconnected_by_server,
)


class TestClassification:
    @pytest.mark.parametrize("code", [400, 401, 403])
    def test_rejected_upgrade_is_auth_failure(self, code):
        assert is_authentication_failure(TransportFailure("WebSocket", code, "Invalid HTTP upgrade"))

    @pytest.mark.parametrize(
        "failure",
        [
            None,
            TransportFailure("WebSocket", 500, "Invalid HTTP upgrade"),
            TransportFailure("WebSocket", 401, "something else"),
            TransportFailure("OSError", 401, "Invalid HTTP upgrade"),
        ],
    )
    def test_other_failures_are_not_auth(self, failure):
        assert not is_authentication_failure(failure)

    def test_clean_server_close(self):
        assert is_disconnected_by_server(TransportFailure("WebSocket", 1000, "connection closed by server"))
        assert not is_disconnected_by_server(TransportFailure("WebSocket", 1001, "connection closed by server"))
        assert not is_disconnected_by_server(None)


class TestBuildRecognizeUrl:
    def test_no_options_leaves_url_alone(self):
        assert build_recognize_url("wss://host/v1/recognize") == "wss://host/v1/recognize"

    def test_model_and_opt_out(self):
        url = build_recognize_url("wss://host/v1/recognize", model="en-US_BroadbandModel", learning_opt_out=True)
        query = parse_qs(urlsplit(url).query)

        assert query == {"model": ["en-US_BroadbandModel"], "x-watson-learning-opt-out": ["true"]}

    def test_existing_query_is_kept(self):
        url = build_recognize_url("wss://host/v1/recognize?customization_id=abc", learning_opt_out=False)
        query = parse_qs(urlsplit(url).query)

        assert query == {"customization_id": ["abc"], "x-watson-learning-opt-out": ["false"]}


class FakeWebSocket:
    def __init__(self, messages=(), closed_with=None):
        self._messages = list(messages)
        self._closed_with = closed_with
        self.sent = []
        self.close_calls = 0
        self.close_code = None
        self.close_reason = None
        self._closed = asyncio.Event()

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.close_calls += 1
        self._closed.set()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._messages:
            yield message
        if self._closed_with is not None:
            code, reason = self._closed_with
            raise ConnectionClosed(Close(code, reason), None)
        await self._closed.wait()
        self.close_code = 1000


def _install(monkeypatch, outcome, calls):
    async def fake_connect(url, **kwargs):
        calls.append((url, kwargs))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(transport_module.websockets, "connect", fake_connect)


async def _run_until_disconnected(transport, events):
    transport.connect()
    for _ in range(100):
        if events and isinstance(events[-1], TransportDisconnected):
            return
        await asyncio.sleep(0)
    raise AssertionError(f"transport never disconnected: {events}")


class TestWebSocketTransport:
    @pytest.mark.asyncio
    async def test_messages_are_forwarded_and_server_close_classified(self, monkeypatch):
        calls = []
        ws = FakeWebSocket(messages=['{"state": "listening"}', b"\x00\x01"], closed_with=(1000, ""))
        _install(monkeypatch, ws, calls)
        events = []
        transport = WebSocketTransport("wss://host/recognize", open_timeout=4.0, on_event=events.append)
        transport.set_header("X-Watson-Authorization-Token", "tok")

        await _run_until_disconnected(transport, events)

        assert events == [
            TransportConnected(),
            TextMessageReceived('{"state": "listening"}'),
            BinaryMessageReceived(b"\x00\x01"),
            TransportDisconnected(TransportFailure("WebSocket", 1000, "connection closed by server")),
        ]
        url, kwargs = calls[0]
        assert url == "wss://host/recognize"
        assert kwargs["extra_headers"] == {"X-Watson-Authorization-Token": "tok"}
        assert kwargs["open_timeout"] == 4.0

    @pytest.mark.asyncio
    async def test_rejected_upgrade(self, monkeypatch):
        _install(monkeypatch, InvalidStatusCode(401, {}), [])
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)

        await _run_until_disconnected(transport, events)

        assert events == [TransportDisconnected(TransportFailure("WebSocket", 401, "Invalid HTTP upgrade"))]
        assert is_authentication_failure(events[0].failure)

    @pytest.mark.asyncio
    async def test_abnormal_close_keeps_code(self, monkeypatch):
        _install(monkeypatch, FakeWebSocket(closed_with=(1011, "internal error")), [])
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)

        await _run_until_disconnected(transport, events)

        assert events[-1] == TransportDisconnected(TransportFailure("WebSocket", 1011, "internal error"))

    @pytest.mark.asyncio
    async def test_network_error(self, monkeypatch):
        _install(monkeypatch, ConnectionRefusedError(111, "Connection refused"), [])
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)

        await _run_until_disconnected(transport, events)

        failure = events[-1].failure
        assert failure.domain == "ConnectionRefusedError"
        assert failure.code == 111
        assert not is_authentication_failure(failure)

    @pytest.mark.asyncio
    async def test_local_disconnect_reports_no_failure(self, monkeypatch):
        ws = FakeWebSocket()
        _install(monkeypatch, ws, [])
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)
        transport.connect()
        for _ in range(10):
            await asyncio.sleep(0)
        assert transport.is_open

        await transport.send_text("hello")
        await transport.send_binary(b"\x01")
        transport.disconnect(timeout=1.0)
        for _ in range(20):
            await asyncio.sleep(0)

        assert ws.sent == ["hello", b"\x01"]
        assert ws.close_calls == 1
        assert events == [TransportConnected(), TransportDisconnected(None)]
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_failing_close_is_logged_not_raised(self, monkeypatch):
        class BrokenCloseWebSocket(FakeWebSocket):
            async def close(self):
                self.close_calls += 1
                self._closed.set()
                raise ConnectionResetError("reset by peer")

        ws = BrokenCloseWebSocket()
        _install(monkeypatch, ws, [])
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)
        transport.connect()
        for _ in range(10):
            await asyncio.sleep(0)

        transport.disconnect(timeout=1.0)
        for _ in range(20):
            await asyncio.sleep(0)

        assert ws.close_calls == 1
        assert events == [TransportConnected(), TransportDisconnected(None)]
        assert transport._close_task is None

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake_abandons_attempt(self, monkeypatch):
        started = []

        async def slow_connect(url, **kwargs):
            started.append(url)
            await asyncio.Event().wait()

        monkeypatch.setattr(transport_module.websockets, "connect", slow_connect)
        events = []
        transport = WebSocketTransport("wss://host/recognize", on_event=events.append)
        transport.connect()
        await asyncio.sleep(0)

        transport.disconnect()
        transport.connect()
        for _ in range(10):
            await asyncio.sleep(0)

        assert len(started) == 2
        assert events == []

        transport.disconnect()
        for _ in range(10):
            await asyncio.sleep(0)
        assert events == []

    @pytest.mark.asyncio
    async def test_listener_may_reconnect_from_disconnect_event(self, monkeypatch):
        calls = []
        _install(monkeypatch, InvalidStatusCode(401, {}), calls)
        events = []
        transport = WebSocketTransport("wss://host/recognize")

        def on_event(event):
            events.append(event)
            if len(events) == 1:
                transport.connect()

        transport.on_event = on_event
        transport.connect()
        for _ in range(20):
            await asyncio.sleep(0)

        assert len(calls) == 2
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_send_when_closed_raises(self):
        transport = WebSocketTransport("wss://host/recognize")

        with pytest.raises(ConnectionError):
            await transport.send_text("hello")
