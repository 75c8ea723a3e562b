# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Transcription provider factory and registry.
"""

from ..transcription_provider import ModelInfo, TranscriptionProvider
from .vosk_provider import VoskProvider

# Registry of available providers
PROVIDER_REGISTRY: dict[str, type[TranscriptionProvider]] = {
    "vosk": VoskProvider,
}


def create_provider(
    provider_name: str, model_id: str, sample_rate: int = 16000
) -> TranscriptionProvider:
    """
    Factory function to create a transcription provider.

    Raises:
        ValueError: If provider_name is not registered
        RuntimeError: If the model cannot be loaded
    """
    provider_class = PROVIDER_REGISTRY.get(provider_name)
    if not provider_class:
        available = ", ".join(PROVIDER_REGISTRY.keys())
        raise ValueError(
            f"Unknown provider: {provider_name}. Available providers: {available}"
        )

    return provider_class(model_id, sample_rate)


def get_all_available_models() -> list[ModelInfo]:
    """Get all downloadable models from all registered providers."""
    models: list[ModelInfo] = []
    for provider_class in PROVIDER_REGISTRY.values():
        models.extend(provider_class.get_available_models())
    return models


def download_model(provider_name: str, model_id: str) -> str:
    """
    Download a model for a provider.

    Raises:
        ValueError: If provider or model is not recognized
    """
    provider_class = PROVIDER_REGISTRY.get(provider_name)
    if not provider_class:
        available = ", ".join(PROVIDER_REGISTRY.keys())
        raise ValueError(
            f"Unknown provider: {provider_name}. Available providers: {available}"
        )
    return provider_class.download_model(model_id)


__all__ = [
    "create_provider",
    "get_all_available_models",
    "download_model",
    "PROVIDER_REGISTRY",
    "VoskProvider",
]
