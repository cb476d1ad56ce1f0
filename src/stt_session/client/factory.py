"""Factory for creating transcription sessions from configuration.

Provides create_session() that:
- Builds the token provider from the configured credentials
- Builds the websocket transport for the configured recognize endpoint
- Returns a TranscriptionSession wired to both
"""

from ..core.config import ConfigLoader, get_config, setup_logging
from .internal.session import (
    FailureCallback,
    ResultsCallback,
    StateChangeCallback,
    TranscriptionSession,
)
from .internal.token import TokenProvider
from .internal.transport import WebSocketTransport, build_recognize_url

logger = setup_logging(__name__)


def create_session(
    config: ConfigLoader | None = None,
    model: str | None = None,
    on_results: ResultsCallback | None = None,
    on_failure: FailureCallback | None = None,
    on_state_change: StateChangeCallback | None = None,
) -> TranscriptionSession:
    """Create a session for the configured service.

    Args:
        config: Config loader (uses the global one if None)
        model: Recognition model overriding ``service.model``
        on_results: Called with the full result list after every update
        on_failure: Called with every classified failure
        on_state_change: Called with ``(old, new)`` on every state change

    Returns:
        A disconnected TranscriptionSession

    Raises:
        ValueError: If no credentials are configured

    """
    if config is None:
        config = get_config()

    if not config.username or not config.password:
        raise ValueError(
            "Credentials not configured. Set STT_SESSION_USERNAME and STT_SESSION_PASSWORD "
            f"or add [stt.credentials] to {config.config_file}"
        )

    token_provider = TokenProvider(
        token_url=config.token_url,
        username=config.username,
        password=config.password,
        service_url=config.service_url,
        timeout=config.token_timeout_s,
        error_domain=config.error_domain,
    )

    url = build_recognize_url(config.websocket_url, model=model or config.model, learning_opt_out=config.learning_opt_out)
    transport = WebSocketTransport(url, open_timeout=config.connect_timeout_s)
    logger.info(f"Created session for {url}")

    return TranscriptionSession(
        token_provider,
        transport,
        max_retries=config.max_retries,
        client_id=config.client_id,
        error_domain=config.error_domain,
        max_pending_audio_frames=config.max_pending_audio_frames,
        token_timeout=config.token_timeout_s,
        disconnect_timeout=config.disconnect_timeout_s,
        on_results=on_results,
        on_failure=on_failure,
        on_state_change=on_state_change,
    )
