# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Base interface for speech transcription providers.

A provider turns raw microphone audio into partial and final transcripts.
Speech sources wrap a provider and turn its transcripts into word lists
for voice sync.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class TranscriptionResult:
    """A transcript produced by a provider."""

    text: str
    is_partial: bool


@dataclass
class ModelInfo:
    """Information about an available transcription model."""

    id: str  # Unique identifier (e.g., "vosk-en-us-small")
    name: str  # Display name (e.g., "English US - Small")
    provider: str
    size_mb: int | None = None


class TranscriptionProvider(ABC):
    """Base interface for speech transcription providers."""

    @abstractmethod
    def __init__(self, model_id: str, sample_rate: int = 16000) -> None:
        """
        Load the model.

        Raises:
            RuntimeError: If the model is missing or cannot be loaded
        """

    @abstractmethod
    def process_audio(self, audio_data: bytes) -> TranscriptionResult | None:
        """Feed 16-bit mono PCM audio; return a transcript if one is ready."""

    @abstractmethod
    def reset(self) -> None:
        """Discard any in-progress utterance."""

    @staticmethod
    @abstractmethod
    def get_available_models() -> list[ModelInfo]:
        """Models this provider knows how to download."""

    @staticmethod
    @abstractmethod
    def download_model(model_id: str, target_dir: str | None = None) -> str:
        """Download a model if not already present and return its path."""
