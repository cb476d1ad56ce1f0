#!/usr/bin/env python3
"""Client session for the streaming recognize protocol.

This module provides the TranscriptionSession class: it authenticates the
socket with a bearer token, keeps outgoing control messages and audio frames
in order across connect/disconnect boundaries, and merges the server's
indexed result updates into one growing result list.
"""

import asyncio
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from ...audio.conversion import AudioFrame, frame_to_pcm_bytes
from ...core.config import setup_logging
from ...schemas.messages import (
    TranscriptionResult,
    TranscriptionResultWrapper,
    TranscriptionSettings,
    TranscriptionState,
    TranscriptionStop,
)
from .classify import ResultsUpdate, ServerError, StateUpdate, classify_message
from .exceptions import (
    DEFAULT_ERROR_DOMAIN,
    AudioBufferOverflowError,
    AuthenticationError,
    MessageParseError,
    SerializationError,
    ServerReportedError,
    SessionError,
    TokenAcquisitionError,
    TransportError,
)
from .merger import ResultMerger
from .transport import (
    BinaryMessageReceived,
    TextMessageReceived,
    Transport,
    TransportConnected,
    TransportDisconnected,
    TransportEvent,
    TransportFailure,
    is_authentication_failure,
    is_disconnected_by_server,
)
from .write_queue import OrderedWriteQueue

logger = setup_logging(__name__)

AUTHORIZATION_HEADER = "X-Watson-Authorization-Token"
USER_AGENT_HEADER = "User-Agent"
DEFAULT_CLIENT_ID = "stt-session/0.1.0 python"
DEFAULT_MAX_RETRIES = 2
INVALID_UPGRADE_REASON = "Invalid HTTP upgrade. Please verify your credentials."


class SessionState(Enum):
    """Connection state of a transcription session."""

    DISCONNECTED = "disconnected"  # Initial and terminal
    CONNECTED = "connected"  # Socket open, recognizer not yet listening
    LISTENING = "listening"  # Recognizer ready for audio
    TRANSCRIBING = "transcribing"  # Audio is being streamed


class TokenSource(Protocol):
    def current_token(self) -> str | None: ...

    def invalidate(self) -> None: ...

    async def refresh(self) -> str: ...


ResultsCallback = Callable[[list[TranscriptionResult]], None]
FailureCallback = Callable[[SessionError], None]
StateChangeCallback = Callable[[SessionState, SessionState], None]


class TranscriptionSession:
    """Stateful client for one streaming transcription interaction.

    Transport notifications arrive through :meth:`handle_event`, which is the
    only place connection state, the retry counter and the result list are
    mutated. Everything runs on one asyncio loop; producers on other threads
    hand frames over with :meth:`send_audio_threadsafe`.

    Callbacks:
        on_results: full result snapshot after every successful merge
        on_failure: every classified failure (auth, token, transport, parse,
            server error string, serialization, audio overflow)
        on_state_change: ``(old, new)`` after every state transition

    Example::

        session = TranscriptionSession(provider, transport, on_results=print)
        session.connect()
        session.start_session(TranscriptionSettings.for_pcm(16000))
        session.send_audio(pcm_bytes)
        session.stop_session()
        session.disconnect()

    """

    def __init__(
        self,
        token_provider: TokenSource,
        transport: Transport,
        max_retries: int = DEFAULT_MAX_RETRIES,
        client_id: str = DEFAULT_CLIENT_ID,
        error_domain: str = DEFAULT_ERROR_DOMAIN,
        max_pending_audio_frames: int = 500,
        token_timeout: float | None = 10.0,
        disconnect_timeout: float | None = None,
        on_results: ResultsCallback | None = None,
        on_failure: FailureCallback | None = None,
        on_state_change: StateChangeCallback | None = None,
    ):
        self.max_retries = max_retries
        self.client_id = client_id
        self.error_domain = error_domain
        self.max_pending_audio_frames = max_pending_audio_frames
        self.token_timeout = token_timeout
        self.disconnect_timeout = disconnect_timeout

        self.on_results = on_results
        self.on_failure = on_failure
        self.on_state_change = on_state_change

        self.retry_count = 0
        self._state = SessionState.DISCONNECTED
        self._connecting = False
        self._shutting_down = False
        self._overflowing = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._refresh_task: asyncio.Task | None = None
        self._waiters: list[tuple[frozenset[SessionState], asyncio.Future]] = []

        self._token_provider = token_provider
        self._transport = transport
        self._transport.on_event = self.handle_event
        self._merger = ResultMerger(error_domain)
        self._queue = OrderedWriteQueue(on_error=self._on_write_failed, name="session-writes")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connecting(self) -> bool:
        return self._connecting

    @property
    def results(self) -> list[TranscriptionResult]:
        """Snapshot of the merged results."""
        return self._merger.results

    @property
    def pending_writes(self) -> int:
        return len(self._queue)

    def transcript(self, final_only: bool = False) -> str:
        return self._merger.transcript(final_only=final_only)

    def clear_results(self) -> None:
        self._merger.reset()

    # ------------------------------------------------------------------
    # Caller API
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open the connection with a full retry budget; ignored while connecting or connected."""
        if self._connecting:
            logger.debug("connect() ignored: connection already in progress")
            return
        if self._state is not SessionState.DISCONNECTED:
            logger.debug(f"connect() ignored: session is {self._state.value}")
            return

        self._loop = asyncio.get_running_loop()
        if self._queue.is_closed:
            self._queue.reopen()
        self._shutting_down = False
        self._connecting = True
        self.retry_count = 0
        logger.info("Connecting")
        self._connect_with_token()

    def start_session(self, settings: TranscriptionSettings | Mapping[str, Any]) -> bool:
        """Queue the start control message built from ``settings``.

        Returns False when the message could not be serialized (reported via
        ``on_failure``) or the session is shutting down.
        """
        try:
            if not isinstance(settings, TranscriptionSettings):
                settings = TranscriptionSettings.model_validate(settings)
            payload = settings.to_wire()
        except (ValidationError, PydanticSerializationError, TypeError, ValueError) as e:
            self._report(SerializationError(f"failed to serialize start message: {e}", domain=self.error_domain))
            return False
        return self._write_text(payload, "start message")

    def stop_session(self) -> bool:
        """Queue the stop control message."""
        try:
            payload = TranscriptionStop().to_wire()
        except (PydanticSerializationError, ValueError) as e:
            self._report(SerializationError(f"failed to serialize stop message: {e}", domain=self.error_domain))
            return False
        return self._write_text(payload, "stop message")

    def send_audio(self, frame: AudioFrame) -> bool:
        """Queue one audio frame.

        Frames are dropped while the session is idle or shutting down. While
        a connection is being established they are buffered, up to
        ``max_pending_audio_frames``.

        Raises:
            TypeError: ``frame`` is not bytes-like or a numpy array.

        """
        pcm = frame_to_pcm_bytes(frame)
        if self._shutting_down or (self._state is SessionState.DISCONNECTED and not self._connecting):
            logger.debug(f"Dropping audio frame ({len(pcm)} bytes): session is not connected")
            return False

        pending_audio = self._queue.pending_count("audio")
        if pending_audio >= self.max_pending_audio_frames:
            if not self._overflowing:
                self._overflowing = True
                self._report(
                    AudioBufferOverflowError(
                        f"audio buffer full ({pending_audio} frames pending), dropping frames",
                        domain=self.error_domain,
                    )
                )
            return False
        self._overflowing = False

        async def write_frame() -> None:
            if self._state in (SessionState.CONNECTED, SessionState.LISTENING):
                self._set_state(SessionState.TRANSCRIBING)
            await self._transport.send_binary(pcm)

        return self._queue.submit(write_frame, label="audio frame", kind="audio")

    def send_audio_threadsafe(self, frame: AudioFrame) -> None:
        """Hand a frame from a capture thread to the session's loop."""
        if self._loop is None:
            raise RuntimeError("Session is not attached to an event loop; call connect() first")
        self._loop.call_soon_threadsafe(self.send_audio, frame)

    def disconnect(self, force_timeout: float | None = None) -> None:
        """Close the connection after writes already queued.

        No-op when the session is idle. Writes submitted after this call are
        discarded.
        """
        if self._shutting_down:
            logger.debug("disconnect() ignored: already disconnecting")
            return
        if self._state is SessionState.DISCONNECTED and not self._connecting:
            logger.debug("disconnect() ignored: not connected")
            return

        timeout = force_timeout if force_timeout is not None else self.disconnect_timeout
        self._shutting_down = True

        if self._state is SessionState.DISCONNECTED:
            logger.info("Cancelling connection attempt")
            self._connecting = False
            if self._refresh_task is not None:
                self._refresh_task.cancel()
                self._refresh_task = None
            self._queue.close()
            self._transport.disconnect(timeout)
            return

        async def shut_down() -> None:
            logger.info("Disconnecting")
            self._queue.close()
            self._transport.disconnect(timeout)

        logger.info("Queueing disconnect")
        self._queue.submit(shut_down, label="disconnect")

    async def close(self, timeout: float | None = None) -> None:
        """Disconnect and wait until the transport reports the close."""
        self.disconnect()
        await self.wait_for(SessionState.DISCONNECTED, timeout=timeout)

    async def flush(self) -> None:
        """Wait until every queued write has been handed to the transport."""
        await self._queue.join()

    async def wait_for(self, *states: SessionState, timeout: float | None = None) -> SessionState:
        """Wait until the session enters one of ``states``.

        Raises:
            TimeoutError: ``timeout`` elapsed first.

        """
        if self._state in states:
            return self._state

        future = asyncio.get_running_loop().create_future()
        waiter = (frozenset(states), future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def __aenter__(self) -> "TranscriptionSession":
        self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close(timeout=self.disconnect_timeout)

    # ------------------------------------------------------------------
    # Connection procedure
    # ------------------------------------------------------------------

    def _connect_with_token(self) -> None:
        if self.retry_count >= self.max_retries:
            self._connecting = False
            logger.error(f"Giving up after {self.retry_count} connection attempts")
            self._report(AuthenticationError(INVALID_UPGRADE_REASON, domain=self.error_domain))
            return

        token = self._token_provider.current_token()
        if token is None:
            # Only socket connects count toward max_retries; a failed refresh is fatal
            logger.info(f"Refreshing token before attempt {self.retry_count + 1}/{self.max_retries}")
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_token_and_connect())
            return

        self.retry_count += 1
        self._transport.set_header(AUTHORIZATION_HEADER, token)
        self._transport.set_header(USER_AGENT_HEADER, self.client_id)
        logger.info(f"Opening transport (attempt {self.retry_count}/{self.max_retries})")
        self._transport.connect()

    async def _refresh_token_and_connect(self) -> None:
        failure: SessionError | None = None
        try:
            if self.token_timeout is None:
                await self._token_provider.refresh()
            else:
                await asyncio.wait_for(self._token_provider.refresh(), self.token_timeout)
        except TokenAcquisitionError as e:
            failure = e
        except TimeoutError:
            failure = TokenAcquisitionError(
                f"failed to obtain token: timed out after {self.token_timeout}s", domain=self.error_domain
            )
        except Exception as e:
            failure = TokenAcquisitionError(f"failed to obtain token: {e}", domain=self.error_domain)
        finally:
            self._refresh_task = None

        if self._shutting_down:
            return
        if failure is None and self._token_provider.current_token() is None:
            failure = TokenAcquisitionError("failed to obtain token: no token returned", domain=self.error_domain)
        if failure is not None:
            self._connecting = False
            self._report(failure)
            return
        self._connect_with_token()

    # ------------------------------------------------------------------
    # Transport notifications
    # ------------------------------------------------------------------

    def handle_event(self, event: TransportEvent) -> None:
        """Single entry point for transport notifications."""
        if isinstance(event, TransportConnected):
            self._on_connected()
        elif isinstance(event, TextMessageReceived):
            self._on_text_message(event.text)
        elif isinstance(event, BinaryMessageReceived):
            logger.debug(f"Ignoring binary message ({len(event.data)} bytes)")
        elif isinstance(event, TransportDisconnected):
            self._on_disconnected(event.failure)
        else:
            logger.warning(f"Unknown transport event: {event!r}")

    def _on_connected(self) -> None:
        self._connecting = False
        self.retry_count = 0
        if self._shutting_down:
            logger.debug("Connected while disconnecting; waiting for the close")
            return
        self._set_state(SessionState.CONNECTED)
        self._queue.release()

    def _on_disconnected(self, failure: TransportFailure | None) -> None:
        self._set_state(SessionState.DISCONNECTED)
        self._queue.hold()

        if self._shutting_down:
            self._connecting = False
            self._queue.close()
            return

        if is_authentication_failure(failure):
            logger.warning(f"Server rejected the token ({failure}), reconnecting")
            self._token_provider.invalidate()
            self._connecting = True
            self._connect_with_token()
            return

        self._connecting = False
        if is_disconnected_by_server(failure):
            logger.info("Connection closed by server")
        elif failure is not None:
            self._report(TransportError(str(failure), code=failure.code, domain=self.error_domain, failure=failure))

    def _on_text_message(self, text: str) -> None:
        try:
            message = classify_message(text, self.error_domain)
        except MessageParseError as e:
            logger.warning(f"Unrecognized server message: {text[:200]!r}")
            self._report(e)
            return

        if isinstance(message, StateUpdate):
            self._on_recognizer_state(message.state)
        elif isinstance(message, ResultsUpdate):
            self._on_results(message.wrapper)
        elif isinstance(message, ServerError):
            self._on_server_error(message.message)

    def _on_recognizer_state(self, state: TranscriptionState) -> None:
        if state.is_listening and self._state in (SessionState.CONNECTED, SessionState.TRANSCRIBING):
            self._set_state(SessionState.LISTENING)
        else:
            logger.debug(f"Recognizer state {state.state!r} while {self._state.value}")

    def _on_results(self, wrapper: TranscriptionResultWrapper) -> None:
        try:
            snapshot = self._merger.merge(wrapper)
        except MessageParseError as e:
            logger.error(f"Rejected result update: {e}")
            self._report(e)
            return

        logger.debug(f"Merged {len(wrapper.results)} results at index {wrapper.result_index} ({len(snapshot)} total)")
        if self.on_results:
            try:
                self.on_results(snapshot)
            except Exception as e:
                logger.error(f"Error in results callback: {e}")

    def _on_server_error(self, message: str) -> None:
        if self._state is not SessionState.DISCONNECTED:
            self._set_state(SessionState.LISTENING)
        self._report(ServerReportedError(message, domain=self.error_domain))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _write_text(self, payload: str, label: str) -> bool:
        if self._shutting_down:
            logger.debug(f"Discarding {label}: session is disconnecting")
            return False

        async def write() -> None:
            await self._transport.send_text(payload)

        return self._queue.submit(write, label=label)

    def _on_write_failed(self, error: Exception, label: str) -> None:
        self._report(TransportError(f"failed to write {label}: {error}", domain=self.error_domain))

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.info(f"Session state: {old_state.value} -> {new_state.value}")

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")

        for states, future in list(self._waiters):
            if new_state in states and not future.done():
                future.set_result(new_state)

    def _report(self, error: SessionError) -> None:
        logger.error(f"Session failure: {error!r}")
        if self.on_failure:
            try:
                self.on_failure(error)
            except Exception as e:
                logger.error(f"Error in failure callback: {e}")
