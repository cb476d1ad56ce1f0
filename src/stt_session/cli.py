#!/usr/bin/env python3
"""Command line entry point: stream a WAV file through a transcription session."""

import asyncio
import json
import sys
import wave
from collections.abc import Iterator
from pathlib import Path

import click
from rich.console import Console

from . import __version__
from .audio import frame_duration_ms
from .core.config import ConfigLoader, get_config, setup_logging
from .core.logging import set_level
from .schemas.messages import TranscriptionResult, TranscriptionSettings

console = Console(stderr=True)
logger = setup_logging(__name__)


def iter_wav_frames(path: Path, chunk_ms: int) -> tuple[int, int, Iterator[bytes]]:
    """Read a 16-bit PCM WAV header and return a lazy ``chunk_ms`` frame iterator.

    Returns:
        (sample_rate, channels, frame iterator)

    Raises:
        click.BadParameter: The file is not a 16-bit PCM WAV file.

    """
    try:
        with wave.open(str(path), "rb") as wav_file:
            sample_width = wav_file.getsampwidth()
            sample_rate = wav_file.getframerate()
            channels = wav_file.getnchannels()
    except (wave.Error, EOFError) as e:
        raise click.BadParameter(f"{path} is not a readable WAV file: {e}") from e
    if sample_width != 2:
        raise click.BadParameter(f"{path} must be 16-bit PCM (got {sample_width * 8}-bit)")

    frames_per_chunk = max(1, sample_rate * chunk_ms // 1000)

    def frames() -> Iterator[bytes]:
        with wave.open(str(path), "rb") as wav_file:
            while True:
                chunk = wav_file.readframes(frames_per_chunk)
                if not chunk:
                    return
                yield chunk

    return sample_rate, channels, frames()


def results_to_json(results: list[TranscriptionResult]) -> str:
    return json.dumps(
        {
            "text": " ".join(r.text.strip() for r in results if r.final and r.text.strip()),
            "results": [r.model_dump(exclude_none=True) for r in results],
        },
        ensure_ascii=False,
    )


async def transcribe_file(
    path: Path,
    config: ConfigLoader,
    model: str | None = None,
    interim: bool = True,
    timeout: float = 60.0,
    show_interim: bool = False,
    realtime: bool = False,
) -> tuple[list[TranscriptionResult], list[str]]:
    """Stream ``path`` to the recognizer and return the results and failures."""
    from .client import SessionState, create_session

    failures: list[str] = []
    gave_up = asyncio.Event()

    def on_results(results: list[TranscriptionResult]) -> None:
        if show_interim and results:
            latest = results[-1]
            marker = "[green]final[/green]" if latest.final else "[dim]partial[/dim]"
            console.print(f"{marker} {latest.text}")

    def on_failure(error) -> None:  # noqa: ANN001
        failures.append(error.reason)
        console.print(f"[red]{type(error).__name__}: {error.reason}[/red]")
        if session.state is SessionState.DISCONNECTED and not session.is_connecting:
            gave_up.set()

    sample_rate, channels, frames = iter_wav_frames(path, config.audio_chunk_ms)
    options = config.recognition_options
    options["interim_results"] = interim
    settings = TranscriptionSettings.for_pcm(sample_rate, channels, **options)

    session = create_session(config, model=model, on_results=on_results, on_failure=on_failure)
    session.connect()
    session.start_session(settings)

    try:
        if not await _wait_listening(session, gave_up, timeout):
            return session.results, failures

        streamed_ms = await stream_frames(session, frames, sample_rate, channels, realtime=realtime)
        logger.info(f"Streamed {streamed_ms / 1000:.1f}s of audio from {path}")
        session.stop_session()
        await session.flush()

        await session.wait_for(SessionState.LISTENING, SessionState.DISCONNECTED, timeout=timeout)
    except TimeoutError:
        failures.append(f"timed out after {timeout}s waiting for the recognizer")
    finally:
        await session.close(timeout=config.disconnect_timeout_s)

    return session.results, failures


async def stream_frames(session, frames: Iterator[bytes], sample_rate: int, channels: int, realtime: bool = False) -> float:  # noqa: ANN001
    """Send every frame to ``session`` and return the audio duration in ms.

    With ``realtime`` each frame is followed by a pause of its own duration,
    as a live microphone would deliver it.
    """
    total_ms = 0.0
    for frame in frames:
        session.send_audio(frame)
        duration_ms = frame_duration_ms(frame, sample_rate, channels)
        total_ms += duration_ms
        # Let the write queue drain between frames
        await asyncio.sleep(duration_ms / 1000 if realtime else 0)
    return total_ms


async def _wait_listening(session, gave_up: asyncio.Event, timeout: float) -> bool:  # noqa: ANN001
    """Wait for the recognizer to listen; False if the connection gave up first."""
    from .client import SessionState

    listening = asyncio.ensure_future(session.wait_for(SessionState.LISTENING, timeout=timeout))
    stopped = asyncio.ensure_future(gave_up.wait())
    done, pending = await asyncio.wait({listening, stopped}, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    if listening in done:
        # Re-raises TimeoutError
        listening.result()
        return True
    return False


@click.group()
@click.version_option(version=__version__, prog_name="stt-session")
def main():
    """🎙️ stt-session - stream audio to a speech recognizer over a websocket"""


@main.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help=" ⚙️  Configuration file path")
@click.option("--model", help=" 🤖 Recognition model identifier")
@click.option("--interim/--no-interim", default=True, help=" ⏱️  Request partial results")
@click.option("--json", "as_json", is_flag=True, help=" 📄 Output JSON format (default: simple text)")
@click.option("--timeout", type=float, default=60.0, show_default=True, help=" ⌛ Seconds to wait for the recognizer")
@click.option("--realtime", is_flag=True, help=" 🕒 Pace frames at playback speed like a live microphone")
@click.option("--debug", is_flag=True, help=" 🐛 Enable detailed debug logging")
def transcribe(audio_file, config_path, model, interim, as_json, timeout, realtime, debug):
    """Transcribe a 16-bit PCM WAV file."""
    if debug:
        set_level("DEBUG")

    config = ConfigLoader(config_path) if config_path else get_config()
    try:
        results, failures = asyncio.run(
            transcribe_file(audio_file, config, model=model, interim=interim, timeout=timeout, show_interim=not as_json, realtime=realtime)
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)

    if as_json:
        click.echo(results_to_json(results))
    else:
        click.echo(" ".join(r.text.strip() for r in results if r.final and r.text.strip()))

    if failures and not results:
        sys.exit(1)


@main.command("show-config")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help=" ⚙️  Configuration file path")
def show_config(config_path):
    """Print the effective configuration (credentials masked)."""
    config = ConfigLoader(config_path) if config_path else get_config()
    click.echo(
        json.dumps(
            {
                "config_file": config.config_file,
                "service_url": config.service_url,
                "token_url": config.token_url,
                "websocket_url": config.websocket_url,
                "model": config.model,
                "learning_opt_out": config.learning_opt_out,
                "username": config.username,
                "password": "***" if config.password else "",
                "max_retries": config.max_retries,
                "max_pending_audio_frames": config.max_pending_audio_frames,
                "audio": {
                    "sample_rate": config.audio_sample_rate,
                    "channels": config.audio_channels,
                    "chunk_ms": config.audio_chunk_ms,
                },
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    main()
