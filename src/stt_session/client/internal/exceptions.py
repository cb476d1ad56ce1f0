#!/usr/bin/env python3
"""Custom exceptions for transcription session operations.

This module defines the failure taxonomy handed to ``on_failure``. Every
failure carries a human readable ``reason``, a numeric ``code`` and the
``domain`` of the session that produced it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .transport import TransportFailure

DEFAULT_ERROR_DOMAIN = "stt_session"


class SessionError(Exception):
    """Base exception for transcription session failures."""

    def __init__(self, reason: str, code: int = 0, domain: str = DEFAULT_ERROR_DOMAIN):
        self.reason = reason
        self.code = code
        self.domain = domain
        super().__init__(reason)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(domain={self.domain!r}, code={self.code}, reason={self.reason!r})"


class AuthenticationError(SessionError):
    """The server rejected the upgrade, or the retry ceiling was reached."""


class TokenAcquisitionError(SessionError):
    """The token endpoint could not be reached or refused the credentials."""


class TransportError(SessionError):
    """A disconnect or write failure that is neither auth nor a clean close."""

    def __init__(
        self,
        reason: str,
        code: int = 0,
        domain: str = DEFAULT_ERROR_DOMAIN,
        failure: TransportFailure | None = None,
    ):
        super().__init__(reason, code=code, domain=domain)
        self.failure = failure


class ServerReportedError(SessionError):
    """Recoverable error string sent by the recognizer."""


class MessageParseError(SessionError):
    """An inbound message could not be interpreted."""


class ResultIndexGapError(MessageParseError):
    """A result batch starts past the end of the known results."""

    def __init__(self, result_index: int, known_results: int, domain: str = DEFAULT_ERROR_DOMAIN):
        self.result_index = result_index
        self.known_results = known_results
        super().__init__(
            f"result_index {result_index} leaves a gap after {known_results} known results",
            domain=domain,
        )


class SerializationError(SessionError):
    """An outbound control message could not be serialized."""


class AudioBufferOverflowError(SessionError):
    """Audio frames were dropped because the pending buffer is full."""
