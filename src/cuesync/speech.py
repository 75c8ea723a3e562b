# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Speech sources feeding recognised words into voice sync.

A speech source delivers the current transcript as a list of lowercase
words every time recognition updates, from whatever thread it likes. Once
stop_listening() returns it must not deliver anything more.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Protocol

from .errors import RecognitionUnavailable
from .script_parser import normalize_words
from .transcription_provider import TranscriptionProvider, TranscriptionResult

logger = logging.getLogger(__name__)

WordsCallback = Callable[[list[str]], None]


class SpeechSource(ABC):
    """Collaborator contract for anything that recognises speech."""

    @abstractmethod
    def start_listening(self, on_words: WordsCallback) -> None:
        """
        Begin delivering recognised words.

        Raises:
            RecognitionUnavailable: If recognition cannot start
        """

    @abstractmethod
    def stop_listening(self) -> None:
        """Stop delivering words. No callback runs after this returns."""

    @property
    @abstractmethod
    def is_listening(self) -> bool:
        """Whether words are currently being delivered."""


class AudioSource(Protocol):
    """Chunked audio input (see audio.AudioCapture)."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def get_chunk(self, timeout: float = 0.5) -> bytes | None: ...


class RecognizerSpeechSource(SpeechSource):
    """
    Pumps audio through a transcription provider on a background thread.

    Partial and final transcripts are both forwarded; a final transcript ends
    the utterance, so the next partial starts a fresh word list.
    """

    def __init__(
        self,
        audio: AudioSource,
        provider_factory: Callable[[], TranscriptionProvider],
        chunk_timeout: float = 0.05
    ) -> None:
        """
        Args:
            audio: Where audio chunks come from
            provider_factory: Creates the provider on first start (model
                loading is slow and may fail, so it is deferred)
            chunk_timeout: Seconds to wait for each audio chunk
        """
        self.audio: AudioSource = audio
        self._provider_factory = provider_factory
        self._provider: TranscriptionProvider | None = None
        self.chunk_timeout: float = chunk_timeout

        self._callback_lock = threading.RLock()
        self._on_words: WordsCallback | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_listening(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_listening(self, on_words: WordsCallback) -> None:
        self.stop_listening()

        if self._provider is None:
            try:
                self._provider = self._provider_factory()
            except (RuntimeError, ValueError, OSError) as e:
                raise RecognitionUnavailable(f"Could not load speech model: {e}") from e
        else:
            self._provider.reset()

        try:
            self.audio.start()
        except Exception as e:  # sounddevice raises PortAudioError or OSError
            raise RecognitionUnavailable(f"Could not open microphone: {e}") from e

        with self._callback_lock:
            self._on_words = on_words
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="SpeechSource",
            daemon=True
        )
        self._thread.start()
        logger.info("Listening for speech")

    def stop_listening(self) -> None:
        self._stop_event.set()
        with self._callback_lock:
            self._on_words = None
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None
        self.audio.stop()

    def _run(self) -> None:
        assert self._provider is not None
        while not self._stop_event.is_set():
            chunk: bytes | None = self.audio.get_chunk(self.chunk_timeout)
            if not chunk:
                continue
            try:
                result: TranscriptionResult | None = self._provider.process_audio(chunk)
            except Exception as e:  # pylint: disable=broad-except
                logger.error("Recognition failed: %s", e, exc_info=True)
                continue
            if result is None:
                continue
            words: list[str] = normalize_words(result.text)
            if not words:
                continue
            with self._callback_lock:
                if self._on_words is not None and not self._stop_event.is_set():
                    self._on_words(words)


def create_microphone_source(
    provider: str = "vosk",
    model_id: str = "vosk-en-us-small",
    model_path: str | None = None,
    audio_device: int | None = None,
    chunk_ms: int = 100
) -> RecognizerSpeechSource:
    """Build a speech source reading the default (or given) microphone."""
    # Imported here so the core runs without audio libraries present
    from .audio import AudioCapture
    from .providers import create_provider

    audio = AudioCapture(chunk_duration_ms=chunk_ms, device=audio_device)
    return RecognizerSpeechSource(
        audio,
        lambda: create_provider(provider, model_path or model_id, audio.sample_rate)
    )
