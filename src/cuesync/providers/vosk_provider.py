# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Vosk transcription provider.

Runs fully offline. Vosk emits cumulative partial transcripts while an
utterance is in progress and a final transcript when it ends, which is
exactly the stream voice sync consumes.
"""

import json
import logging
import os
import tempfile
import urllib.request
import zipfile
from pathlib import Path
from typing import Any

from vosk import KaldiRecognizer, Model, SetLogLevel

from ..transcription_provider import ModelInfo, TranscriptionProvider, TranscriptionResult

logger = logging.getLogger(__name__)

# Suppress Vosk's verbose logging
SetLogLevel(-1)

MODEL_CACHE_DIR: Path = Path.home() / ".cache" / "cuesync" / "models"


class VoskProvider(TranscriptionProvider):
    """Vosk speech recognition provider."""

    MODELS: dict[str, dict[str, Any]] = {
        "vosk-en-us-small": {
            "dir": "vosk-model-small-en-us-0.15",
            "name": "English US - Small",
            "size_mb": 40,
            "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-us-0.15.zip",
        },
        "vosk-en-us-medium": {
            "dir": "vosk-model-en-us-0.22",
            "name": "English US - Medium",
            "size_mb": 1800,
            "url": "https://alphacephei.com/vosk/models/vosk-model-en-us-0.22.zip",
        },
        "vosk-en-gb-small": {
            "dir": "vosk-model-small-en-gb-0.15",
            "name": "English GB - Small",
            "size_mb": 40,
            "url": "https://alphacephei.com/vosk/models/vosk-model-small-en-gb-0.15.zip",
        },
    }

    sample_rate: int
    model_id: str
    model_path: str
    model: Model
    recognizer: KaldiRecognizer

    def __init__(self, model_id: str, sample_rate: int = 16000) -> None:
        """
        Load a Vosk model.

        Args:
            model_id: Known model identifier, or a path to a model directory
            sample_rate: Audio sample rate (must match audio capture)
        """
        self.sample_rate = sample_rate
        self.model_id = model_id
        self.model_path = model_path_for(model_id)

        if not os.path.exists(self.model_path):
            raise RuntimeError(
                f"Vosk model not found at {self.model_path}. "
                f"Download it with: cuesync --model-id {model_id} --download-model"
            )

        logger.info("Loading Vosk model from %s", self.model_path)
        self.model = Model(self.model_path)
        self.recognizer = self._create_recognizer()

    def _create_recognizer(self) -> KaldiRecognizer:
        return KaldiRecognizer(self.model, self.sample_rate)

    def process_audio(self, audio_data: bytes) -> TranscriptionResult | None:
        if self.recognizer.AcceptWaveform(audio_data):
            result: dict[str, Any] = json.loads(self.recognizer.Result())
            text: str = result.get("text", "").strip()
            is_partial: bool = False
        else:
            result = json.loads(self.recognizer.PartialResult())
            text = result.get("partial", "").strip()
            is_partial = True

        # Vosk reports a lone "the" on silence or bad input
        if not text or text.lower() == "the":
            return None
        return TranscriptionResult(text, is_partial=is_partial)

    def reset(self) -> None:
        self.recognizer = self._create_recognizer()

    @staticmethod
    def get_available_models() -> list[ModelInfo]:
        return [
            ModelInfo(
                id=model_id,
                name=info["name"],
                provider="vosk",
                size_mb=info["size_mb"],
            )
            for model_id, info in VoskProvider.MODELS.items()
        ]

    @staticmethod
    def download_model(model_id: str, target_dir: str | None = None) -> str:
        """
        Download and extract a Vosk model.

        Args:
            model_id: Model identifier (e.g., "vosk-en-us-small")
            target_dir: Directory to save the model, or None for the cache

        Returns:
            Path to the model directory.
        """
        model_info: dict[str, Any] | None = VoskProvider.MODELS.get(model_id)
        if not model_info:
            raise ValueError(
                f"Unknown Vosk model: {model_id}. "
                f"Choose from: {list(VoskProvider.MODELS.keys())}"
            )

        target_path: Path = Path(target_dir) if target_dir else MODEL_CACHE_DIR
        target_path.mkdir(parents=True, exist_ok=True)
        model_path: Path = target_path / model_info["dir"]

        if model_path.exists():
            logger.info("Model already present at %s", model_path)
            return str(model_path)

        url: str = model_info["url"]
        print(f"Downloading {model_id} from {url}...")

        with tempfile.NamedTemporaryFile(suffix=".zip", delete=False) as tmp:
            tmp_path = tmp.name
        try:
            urllib.request.urlretrieve(url, tmp_path)
            print("Extracting...")
            with zipfile.ZipFile(tmp_path, "r") as zf:
                zf.extractall(target_path)
        finally:
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.warning("Could not delete temporary file %s: %s", tmp_path, e)

        print(f"Model installed to {model_path}")
        return str(model_path)


def model_path_for(model_id: str) -> str:
    """Cache location of a known model, or model_id itself if it is a path."""
    model_info = VoskProvider.MODELS.get(model_id)
    if not model_info:
        return model_id
    return str(MODEL_CACHE_DIR / model_info["dir"])
