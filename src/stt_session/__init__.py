"""stt-session - client session for streaming speech transcription."""

from importlib import import_module, metadata
from pathlib import Path
import tomllib
from typing import TYPE_CHECKING


def _get_version() -> str:
    try:
        return metadata.version("stt-session")
    except Exception:
        pass

    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return str(data["project"]["version"])
    except Exception:
        return "unknown"


__version__ = _get_version()

if TYPE_CHECKING:
    from .client import (
        SessionError,
        SessionState,
        TokenProvider,
        TranscriptionSession,
        WebSocketTransport,
        create_session,
    )
    from .core.config import ConfigLoader, get_config
    from .schemas import TranscriptionResult, TranscriptionSettings

_LAZY_EXPORTS = {
    "SessionError": (".client", "SessionError"),
    "SessionState": (".client", "SessionState"),
    "TokenProvider": (".client", "TokenProvider"),
    "TranscriptionSession": (".client", "TranscriptionSession"),
    "WebSocketTransport": (".client", "WebSocketTransport"),
    "create_session": (".client", "create_session"),
    "ConfigLoader": (".core.config", "ConfigLoader"),
    "get_config": (".core.config", "get_config"),
    "TranscriptionResult": (".schemas", "TranscriptionResult"),
    "TranscriptionSettings": (".schemas", "TranscriptionSettings"),
}


def __getattr__(name):
    if name in {"audio", "client", "core", "schemas"}:
        module = import_module(f".{name}", __name__)
        globals()[name] = module
        return module

    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


__all__ = [
    "SessionError",
    "SessionState",
    "TokenProvider",
    "TranscriptionSession",
    "WebSocketTransport",
    "create_session",
    "ConfigLoader",
    "get_config",
    "TranscriptionResult",
    "TranscriptionSettings",
]
