#!/usr/bin/env python3
"""Configuration loader that reads from config files."""
import os
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_CONFIG: dict[str, Any] = {
    "service": {
        "url": "https://stream.watsonplatform.net/speech-to-text/api",
        "token_url": "https://stream.watsonplatform.net/authorization/api/v1/token",
        "websocket_url": "wss://stream.watsonplatform.net/speech-to-text/api/v1/recognize",
        # Empty string means "let the service pick"
        "model": "",
        # "", "true" or "false"; empty leaves the query parameter out
        "learning_opt_out": "",
    },
    "credentials": {"username": "", "password": ""},
    "session": {
        "max_retries": 2,
        "max_pending_audio_frames": 500,
        "token_timeout_s": 10.0,
        "connect_timeout_s": 10.0,
        "disconnect_timeout_s": 5.0,
        "client_id": "stt-session/0.1.0 python",
        "error_domain": "stt_session",
    },
    "audio": {"sample_rate": 16000, "channels": 1, "chunk_ms": 100},
    "recognition": {
        "interim_results": True,
        "continuous": True,
        "inactivity_timeout": 30,
        "max_alternatives": 1,
        "word_confidence": False,
        "timestamps": False,
        "smart_formatting": False,
    },
}


class ConfigLoader:
    """Load configuration from config files."""

    def __init__(self, config_path: str | Path | None = None) -> None:
        if config_path is None:
            config_path = self._default_config_path()

        self.config_file = str(config_path)
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path, "rb") as f:
                full_config = tomllib.load(f)
            stt_config = full_config.get("stt", {})
        else:
            stt_config = {}

        self._config = self._merge_dicts(DEFAULT_CONFIG, stt_config)

    def _default_config_path(self) -> Path:
        env_path = os.environ.get("STT_SESSION_CONFIG")
        if env_path:
            return Path(env_path)
        return Path.home() / ".stt-session" / "config.toml"

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged = base.copy()
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_dicts(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a value using dot notation (e.g., 'session.max_retries')"""
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    # Service endpoints
    @property
    def service_url(self) -> str:
        return str(self.get("service.url", DEFAULT_CONFIG["service"]["url"]))

    @property
    def token_url(self) -> str:
        return str(self.get("service.token_url", DEFAULT_CONFIG["service"]["token_url"]))

    @property
    def websocket_url(self) -> str:
        return str(self.get("service.websocket_url", DEFAULT_CONFIG["service"]["websocket_url"]))

    @property
    def model(self) -> str | None:
        # Check environment variable first
        env_model = os.environ.get("STT_SESSION_MODEL")
        if env_model:
            return env_model
        value = str(self.get("service.model", "") or "")
        return value or None

    @property
    def learning_opt_out(self) -> bool | None:
        """Tri-state opt-out flag: None leaves the query parameter out."""
        value = self.get("service.learning_opt_out", "")
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("1", "true", "yes"):
            return True
        if text in ("0", "false", "no"):
            return False
        return None

    # Credentials
    @property
    def username(self) -> str:
        return os.environ.get("STT_SESSION_USERNAME") or str(self.get("credentials.username", ""))

    @property
    def password(self) -> str:
        return os.environ.get("STT_SESSION_PASSWORD") or str(self.get("credentials.password", ""))

    # Session behaviour
    @property
    def max_retries(self) -> int:
        return int(self.get("session.max_retries", 2))

    @property
    def max_pending_audio_frames(self) -> int:
        return int(self.get("session.max_pending_audio_frames", 500))

    @property
    def token_timeout_s(self) -> float:
        return float(self.get("session.token_timeout_s", 10.0))

    @property
    def connect_timeout_s(self) -> float:
        return float(self.get("session.connect_timeout_s", 10.0))

    @property
    def disconnect_timeout_s(self) -> float:
        return float(self.get("session.disconnect_timeout_s", 5.0))

    @property
    def client_id(self) -> str:
        return str(self.get("session.client_id", DEFAULT_CONFIG["session"]["client_id"]))

    @property
    def error_domain(self) -> str:
        return str(self.get("session.error_domain", DEFAULT_CONFIG["session"]["error_domain"]))

    # Audio framing
    @property
    def audio_sample_rate(self) -> int:
        """Get audio sample rate"""
        return int(self.get("audio.sample_rate", 16000))

    @property
    def audio_channels(self) -> int:
        """Get number of audio channels"""
        return int(self.get("audio.channels", 1))

    @property
    def audio_chunk_ms(self) -> int:
        """Get the duration of one streamed audio frame in milliseconds"""
        return int(self.get("audio.chunk_ms", 100))

    @property
    def recognition_options(self) -> dict[str, Any]:
        """Recognizer options merged into the start message"""
        return dict(self.get("recognition", {}))


# Global singleton instance
_config_loader: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Get the global config loader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def reset_config() -> None:
    """Drop the cached loader so the next get_config() re-reads the file"""
    global _config_loader
    _config_loader = None


# Re-export logging functions
from .logging import setup_logging  # noqa: E402, F401
