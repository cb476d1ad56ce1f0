#!/usr/bin/env python3
"""Transcription client module - Public API exports.

This module provides the public API for the streaming transcription client:
the session state machine, its collaborators and the failure taxonomy.
"""

from .factory import create_session
from .internal.classify import ResultsUpdate, ServerError, StateUpdate, classify_message
from .internal.exceptions import (
    AudioBufferOverflowError,
    AuthenticationError,
    MessageParseError,
    ResultIndexGapError,
    SerializationError,
    ServerReportedError,
    SessionError,
    TokenAcquisitionError,
    TransportError,
)
from .internal.merger import ResultMerger
from .internal.session import SessionState, TranscriptionSession
from .internal.token import TokenProvider
from .internal.transport import (
    BinaryMessageReceived,
    TextMessageReceived,
    Transport,
    TransportConnected,
    TransportDisconnected,
    TransportFailure,
    WebSocketTransport,
    build_recognize_url,
    is_authentication_failure,
    is_disconnected_by_server,
)
from .internal.write_queue import OrderedWriteQueue

__all__ = [
    # Exceptions
    "SessionError",
    "AuthenticationError",
    "TokenAcquisitionError",
    "TransportError",
    "ServerReportedError",
    "MessageParseError",
    "ResultIndexGapError",
    "SerializationError",
    "AudioBufferOverflowError",
    # Session
    "SessionState",
    "TranscriptionSession",
    "create_session",
    # Collaborators
    "OrderedWriteQueue",
    "ResultMerger",
    "TokenProvider",
    "Transport",
    "WebSocketTransport",
    "build_recognize_url",
    # Transport events and failure classification
    "TransportConnected",
    "TextMessageReceived",
    "BinaryMessageReceived",
    "TransportDisconnected",
    "TransportFailure",
    "is_authentication_failure",
    "is_disconnected_by_server",
    # Inbound messages
    "StateUpdate",
    "ResultsUpdate",
    "ServerError",
    "classify_message",
]
