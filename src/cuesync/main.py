# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Main cuesync application.
Wires the prompter session to the web UI and, when available, the microphone.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from . import debug_log
from .config import (
    DEFAULT_CONFIG,
    Config,
    MatchingSettings,
    ScrollSettings,
    TranscriptionConfig,
    get_config_path,
    get_matching_settings,
    get_scroll_settings,
    get_transcription_settings,
    load_config,
    save_config,
)
from .errors import RecognitionUnavailable
from .server import WebServer
from .session import PrompterSession
from .speech import create_microphone_source

logger = logging.getLogger(__name__)


class CuesyncApp:
    """
    Main cuesync application that coordinates all components.
    """

    def __init__(
        self,
        script_text: str = "",
        transcription_config: TranscriptionConfig | None = None,
        host: str = "127.0.0.1",
        port: int = 8000,
        audio_device: int | None = None,
        chunk_ms: int = 100,
        scroll_settings: ScrollSettings | None = None,
        matching_settings: MatchingSettings | None = None,
        voice: bool = True
    ) -> None:
        self.script_text: str = script_text
        self.transcription_config: TranscriptionConfig = (
            transcription_config or DEFAULT_CONFIG["transcription"]
        )
        self.host: str = host
        self.port: int = port
        self.audio_device: int | None = audio_device
        self.chunk_ms: int = chunk_ms
        self.scroll_settings: ScrollSettings | None = scroll_settings
        self.matching_settings: MatchingSettings | None = matching_settings
        self.voice: bool = voice

        self.session: PrompterSession | None = None
        self.server: WebServer | None = None
        self.stop_event: asyncio.Event = asyncio.Event()

    async def _start_voice(self) -> None:
        """Start voice sync. Failure leaves the prompter in manual mode."""
        assert self.session is not None, "Session must be initialized"
        provider: str = self.transcription_config["provider"]
        model_id: str = self.transcription_config["model_id"]
        print(f"Loading transcription model: {provider} / {model_id}")

        try:
            source = create_microphone_source(
                provider=provider,
                model_id=model_id,
                model_path=self.transcription_config.get("model_path"),
                audio_device=self.audio_device,
                chunk_ms=self.chunk_ms
            )
            # Model loading blocks for seconds, keep the event loop free
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.session.start_listening, source)
        except (RecognitionUnavailable, ImportError, OSError) as e:
            print(f"Voice sync unavailable ({e}); continuing with manual scrolling")
            return
        print("Voice sync active")

    async def start(self) -> None:
        """Start the cuesync application and run until stopped."""
        print("Starting Cuesync...")

        self.session = PrompterSession(
            self.script_text,
            scroll_settings=self.scroll_settings,
            matching_settings=self.matching_settings
        )
        self.session.start()

        print("Starting web server...")
        self.server = WebServer(self.session, host=self.host, port=self.port)
        await self.server.start()

        if self.voice:
            await self._start_voice()

        print("\n✓ Cuesync ready!")
        print(f"  Connect a display to ws://{self.host}:{self.port}/ws")
        print("  Press Ctrl+C to stop\n")

        await self.stop_event.wait()

    async def stop(self) -> None:
        """Stop the cuesync application."""
        print("\nStopping Cuesync...")
        self.stop_event.set()

        if self.server:
            await self.server.stop()
            self.server = None

        if self.session:
            self.session.shutdown()
            self.session = None

        print("Cuesync stopped.")


def _print_models() -> None:
    from .providers import get_all_available_models

    models = get_all_available_models()
    print("\nAvailable transcription models:")
    print("-" * 80)
    for model in sorted(models, key=lambda m: (m.provider, m.name)):
        print(f"  {model.id}")
        print(f"    Name: {model.name}")
        if model.size_mb is not None:
            print(f"    Size: {model.size_mb}MB")
        print()


def main() -> None:
    """Main entry point."""
    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()
    transcription_config: TranscriptionConfig = get_transcription_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Cuesync - Teleprompter that scrolls along with your voice"
    )

    parser.add_argument(
        "script",
        type=Path,
        nargs="?",
        default=None,
        help="Script file to load (can also be sent from the UI)"
    )

    parser.add_argument(
        "--provider",
        default=transcription_config["provider"],
        choices=["vosk"],
        help="Transcription provider (default: from config or 'vosk')"
    )

    parser.add_argument(
        "--model-id",
        default=transcription_config["model_id"],
        help="Model identifier (e.g., 'vosk-en-us-small')"
    )

    parser.add_argument(
        "--model-path",
        default=transcription_config.get("model_path"),
        help="Path to custom model directory (optional)"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=config.get("audio_device"),
        help="Audio input device index"
    )

    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=config.get("chunk_ms", 100),
        help="Audio chunk size in milliseconds (default: from config or 100)"
    )

    parser.add_argument(
        "--no-voice",
        action="store_true",
        help="Run without speech recognition (manual and automatic scrolling only)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit"
    )

    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List all available transcription models and exit"
    )

    parser.add_argument(
        "--download-model",
        action="store_true",
        help="Download the specified model and exit"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable sync decision logging to ./logs/"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug-level log messages"
    )

    args: argparse.Namespace = parser.parse_args()

    if args.verbose:
        logging.getLogger("cuesync").setLevel(logging.DEBUG)

    # Handle special commands
    if args.list_devices:
        from .audio import list_devices
        list_devices()
        return

    if args.list_models:
        _print_models()
        return

    if args.download_model:
        from .providers import download_model
        print(f"Downloading model: {args.model_id}")
        download_model(args.provider, args.model_id)
        return

    if args.save_config:
        config["transcription"]["provider"] = args.provider
        config["transcription"]["model_id"] = args.model_id
        config["transcription"]["model_path"] = args.model_path
        config["host"] = args.host
        config["port"] = args.port
        config["audio_device"] = args.device
        config["chunk_ms"] = args.chunk_ms

        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    script_text: str = ""
    if args.script is not None:
        try:
            script_text = args.script.read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error: could not read script {args.script}: {e}", file=sys.stderr)
            sys.exit(1)

    app: CuesyncApp = CuesyncApp(
        script_text=script_text,
        transcription_config={
            "provider": args.provider,
            "model_id": args.model_id,
            "model_path": args.model_path,
        },
        host=args.host,
        port=args.port,
        audio_device=args.device,
        chunk_ms=args.chunk_ms,
        scroll_settings=get_scroll_settings(config),
        matching_settings=get_matching_settings(config),
        voice=not args.no_voice
    )

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.stop_event.set)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        # Ensure clean shutdown
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
