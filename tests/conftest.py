"""Shared test setup: keep log files and user config out of the home directory."""

import os
import tempfile

import pytest

os.environ.setdefault("STT_SESSION_LOG_DIR", tempfile.mkdtemp(prefix="stt-session-logs-"))


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in ("STT_SESSION_USERNAME", "STT_SESSION_PASSWORD", "STT_SESSION_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STT_SESSION_CONFIG", str(tmp_path / "missing-config.toml"))

    from stt_session.core.config import reset_config

    reset_config()
    yield
    reset_config()
