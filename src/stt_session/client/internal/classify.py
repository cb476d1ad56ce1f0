"""Classification of inbound text frames.

The server never tags its messages, so each frame is probed against the known
shapes in a fixed priority order and the first successful parse wins:

1. ``TranscriptionState``        -> :class:`StateUpdate`
2. ``TranscriptionResultWrapper`` -> :class:`ResultsUpdate`
3. a bare string ``error`` field -> :class:`ServerError`
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from ...schemas.messages import TranscriptionResultWrapper, TranscriptionState
from .exceptions import DEFAULT_ERROR_DOMAIN, MessageParseError

UNINTERPRETABLE_MESSAGE = "could not interpret server message"


@dataclass(frozen=True)
class StateUpdate:
    state: TranscriptionState


@dataclass(frozen=True)
class ResultsUpdate:
    wrapper: TranscriptionResultWrapper


@dataclass(frozen=True)
class ServerError:
    message: str


InboundMessage = StateUpdate | ResultsUpdate | ServerError


def _probe_error(payload: dict[str, Any]) -> ServerError | None:
    error = payload.get("error")
    if isinstance(error, str):
        return ServerError(error)
    return None


def _model_probe(model: type[BaseModel], wrap: Callable[[Any], InboundMessage]) -> Callable[[dict[str, Any]], InboundMessage | None]:
    def probe(payload: dict[str, Any]) -> InboundMessage | None:
        try:
            return wrap(model.model_validate(payload))
        except ValidationError:
            return None

    return probe


# Priority order matters: a frame matching several shapes goes to the first.
MESSAGE_PROBES: tuple[Callable[[dict[str, Any]], InboundMessage | None], ...] = (
    _model_probe(TranscriptionState, StateUpdate),
    _model_probe(TranscriptionResultWrapper, ResultsUpdate),
    _probe_error,
)


def classify_message(text: str, error_domain: str = DEFAULT_ERROR_DOMAIN) -> InboundMessage:
    """Turn one inbound text frame into a tagged message.

    Raises:
        MessageParseError: The frame is not JSON, not an object, or matches
            none of the known shapes.

    """
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MessageParseError(f"{UNINTERPRETABLE_MESSAGE}: {e}", domain=error_domain) from e

    if not isinstance(payload, dict):
        raise MessageParseError(
            f"{UNINTERPRETABLE_MESSAGE}: expected an object, got {type(payload).__name__}",
            domain=error_domain,
        )

    for probe in MESSAGE_PROBES:
        message = probe(payload)
        if message is not None:
            return message

    raise MessageParseError(UNINTERPRETABLE_MESSAGE, domain=error_domain)
