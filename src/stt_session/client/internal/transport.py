#!/usr/bin/env python3
"""Socket transport used by the transcription session.

The session only depends on the :class:`Transport` protocol: header setup,
a non-blocking ``connect()``, ``disconnect()``, async text/binary sends and a
single ``on_event`` sink that receives connection lifecycle notifications.
:class:`WebSocketTransport` implements it with the ``websockets`` library.
"""

import asyncio
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatusCode

from ...core.config import setup_logging

logger = setup_logging(__name__)

WEBSOCKET_DOMAIN = "WebSocket"
INVALID_UPGRADE = "Invalid HTTP upgrade"
CLOSED_BY_SERVER = "connection closed by server"
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
AUTH_FAILURE_STATUS_CODES = frozenset({400, 401, 403})

MODEL_PARAM = "model"
LEARNING_OPT_OUT_PARAM = "x-watson-learning-opt-out"


@dataclass(frozen=True)
class TransportFailure:
    """Error triple reported with a disconnect."""

    domain: str
    code: int
    description: str

    def __str__(self) -> str:
        return f"{self.domain} error {self.code}: {self.description}"


def is_authentication_failure(failure: TransportFailure | None) -> bool:
    """True when the server refused the upgrade, i.e. the token was rejected."""
    if failure is None:
        return False
    return (
        failure.domain == WEBSOCKET_DOMAIN
        and failure.code in AUTH_FAILURE_STATUS_CODES
        and failure.description == INVALID_UPGRADE
    )


def is_disconnected_by_server(failure: TransportFailure | None) -> bool:
    """True for a normal close initiated by the server."""
    if failure is None:
        return False
    return (
        failure.domain == WEBSOCKET_DOMAIN
        and failure.code == NORMAL_CLOSURE
        and failure.description == CLOSED_BY_SERVER
    )


@dataclass(frozen=True)
class TransportConnected:
    pass


@dataclass(frozen=True)
class TextMessageReceived:
    text: str


@dataclass(frozen=True)
class BinaryMessageReceived:
    data: bytes


@dataclass(frozen=True)
class TransportDisconnected:
    # None when the close was requested locally
    failure: TransportFailure | None = None


TransportEvent = TransportConnected | TextMessageReceived | BinaryMessageReceived | TransportDisconnected
EventSink = Callable[[TransportEvent], None]


class Transport(Protocol):
    on_event: EventSink | None

    def set_header(self, name: str, value: str) -> None: ...

    def connect(self) -> None: ...

    def disconnect(self, timeout: float | None = None) -> None: ...

    async def send_text(self, text: str) -> None: ...

    async def send_binary(self, data: bytes) -> None: ...


def build_recognize_url(url: str, model: str | None = None, learning_opt_out: bool | None = None) -> str:
    """Add the optional recognition parameters to the streaming endpoint URL."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    if model:
        query.append((MODEL_PARAM, model))
    if learning_opt_out is not None:
        query.append((LEARNING_OPT_OUT_PARAM, "true" if learning_opt_out else "false"))
    return urlunsplit(parts._replace(query=urlencode(query)))


class WebSocketTransport:
    """Transport over a single ``websockets`` client connection.

    ``connect()`` schedules the handshake and a reader task on the running
    loop; results come back through ``on_event``:

    - upgrade rejected with status N  -> ``("WebSocket", N, "Invalid HTTP upgrade")``
    - server closed with code 1000     -> ``("WebSocket", 1000, "connection closed by server")``
    - any other close or network error -> generic failure
    - close requested via ``disconnect`` -> no failure

    ``disconnect()`` during the handshake abandons that attempt: it emits
    nothing further and a new ``connect()`` may start immediately.
    """

    def __init__(
        self,
        url: str,
        open_timeout: float | None = 10.0,
        ssl_context: ssl.SSLContext | None = None,
        max_message_bytes: int | None = 2**20,
        on_event: EventSink | None = None,
    ):
        self.url = url
        self.open_timeout = open_timeout
        self.ssl_context = ssl_context
        self.max_message_bytes = max_message_bytes
        self.on_event = on_event
        self.headers: dict[str, str] = {}
        self._websocket = None
        self._task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._websocket is not None

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def connect(self) -> None:
        if self._task is not None and not self._task.done():
            logger.warning("Transport connect ignored: connection already in progress")
            return
        self._closing = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name="websocket-transport")

    def disconnect(self, timeout: float | None = None) -> None:
        self._closing = True
        if self._task is None or self._task.done():
            return
        if self._websocket is None:
            # Still handshaking: abandon the attempt so a new connect() can start at once
            logger.info("Abandoning WebSocket handshake")
            self._task.cancel()
            self._task = None
            return
        if self._close_task is None or self._close_task.done():
            self._close_task = asyncio.get_running_loop().create_task(self._close(timeout), name="websocket-close")

    async def send_text(self, text: str) -> None:
        await self._require_open().send(text)

    async def send_binary(self, data: bytes) -> None:
        await self._require_open().send(data)

    def _require_open(self):
        if self._websocket is None:
            raise ConnectionError("WebSocket is not connected")
        return self._websocket

    async def _close(self, timeout: float | None) -> None:
        websocket = self._websocket
        if websocket is None:
            return
        try:
            if timeout is None:
                await websocket.close()
            else:
                await asyncio.wait_for(websocket.close(), timeout)
        except TimeoutError:
            logger.warning(f"WebSocket close timed out after {timeout}s, aborting connection")
            if self._task is not None:
                self._task.cancel()
        except Exception as e:
            logger.warning(f"WebSocket close failed: {e}")

    def _emit(self, event: TransportEvent) -> None:
        if self.on_event is None:
            logger.debug(f"No event sink for {type(event).__name__}")
            return
        self.on_event(event)

    async def _run(self) -> None:
        attempt = asyncio.current_task()
        failure: TransportFailure | None = None
        try:
            try:
                websocket = await websockets.connect(
                    self.url,
                    extra_headers=dict(self.headers),
                    open_timeout=self.open_timeout,
                    ssl=self.ssl_context,
                    max_size=self.max_message_bytes,
                )
            except InvalidStatusCode as e:
                logger.error(f"WebSocket upgrade rejected with HTTP {e.status_code}")
                failure = TransportFailure(WEBSOCKET_DOMAIN, e.status_code, INVALID_UPGRADE)
                return
            except InvalidHandshake as e:
                logger.error(f"WebSocket handshake failed: {e}")
                failure = TransportFailure(WEBSOCKET_DOMAIN, ABNORMAL_CLOSURE, str(e))
                return
            except (OSError, TimeoutError) as e:
                logger.error(f"Failed to connect: {e}")
                failure = TransportFailure(type(e).__name__, getattr(e, "errno", None) or 0, str(e) or "connect failed")
                return

            self._websocket = websocket
            logger.info("Connected to WebSocket server")
            self._emit(TransportConnected())

            try:
                async for message in websocket:
                    if isinstance(message, str):
                        self._emit(TextMessageReceived(message))
                    else:
                        self._emit(BinaryMessageReceived(bytes(message)))
            except ConnectionClosed as e:
                failure = self._failure_from_close(e.rcvd.code if e.rcvd else ABNORMAL_CLOSURE, e.rcvd.reason if e.rcvd else "")
            else:
                failure = self._failure_from_close(websocket.close_code or NORMAL_CLOSURE, websocket.close_reason or "")
        finally:
            if self._task is attempt:
                close_task, self._close_task = self._close_task, None
                if close_task is not None and not close_task.done():
                    close_task.cancel()
                # Detach before notifying so the listener may reconnect from the callback
                self._task = None
                self._websocket = None
                if self._closing:
                    failure = None
                logger.info(f"WebSocket transport closed ({failure or 'locally'})")
                self._emit(TransportDisconnected(failure))
            else:
                logger.debug("Discarding disconnect of an abandoned connection attempt")

    @staticmethod
    def _failure_from_close(code: int, reason: str) -> TransportFailure:
        if code == NORMAL_CLOSURE:
            return TransportFailure(WEBSOCKET_DOMAIN, code, CLOSED_BY_SERVER)
        return TransportFailure(WEBSOCKET_DOMAIN, code, reason or "connection closed abnormally")
