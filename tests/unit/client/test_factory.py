"""Tests for create_session()."""

from urllib.parse import parse_qs, urlsplit

import pytest

from stt_session.client import SessionState, TokenProvider, TranscriptionSession, WebSocketTransport, create_session
from stt_session.core.config import ConfigLoader


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        """
[stt.credentials]
username = "apikey"
password = "hunter2"

[stt.service]
websocket_url = "wss://stt.example.com/v1/recognize"
model = "en-US_BroadbandModel"
learning_opt_out = "true"

[stt.session]
max_retries = 5
max_pending_audio_frames = 42
client_id = "tests/0"
"""
    )
    return ConfigLoader(path)


def test_missing_credentials_raise(tmp_path):
    with pytest.raises(ValueError, match="Credentials not configured"):
        create_session(ConfigLoader(tmp_path / "none.toml"))


def test_session_is_wired_from_config(config):
    session = create_session(config)

    assert isinstance(session, TranscriptionSession)
    assert session.state is SessionState.DISCONNECTED
    assert session.max_retries == 5
    assert session.max_pending_audio_frames == 42
    assert session.client_id == "tests/0"

    transport = session._transport
    assert isinstance(transport, WebSocketTransport)
    assert transport.on_event == session.handle_event
    query = parse_qs(urlsplit(transport.url).query)
    assert query == {"model": ["en-US_BroadbandModel"], "x-watson-learning-opt-out": ["true"]}

    assert isinstance(session._token_provider, TokenProvider)
    assert session._token_provider.current_token() is None


def test_model_argument_overrides_config(config):
    session = create_session(config, model="fr-FR_NarrowbandModel")

    assert parse_qs(urlsplit(session._transport.url).query)["model"] == ["fr-FR_NarrowbandModel"]


def test_uses_global_config_with_env_credentials(monkeypatch):
    monkeypatch.setenv("STT_SESSION_USERNAME", "env-user")
    monkeypatch.setenv("STT_SESSION_PASSWORD", "env-pass")

    session = create_session()

    assert session.max_retries == 2
