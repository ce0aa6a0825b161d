"""
Centralized OpenAI client + model configuration.

This keeps AI-related configuration DRY and consistent across endpoints/services.
"""

from __future__ import annotations

from functools import lru_cache

from openai import OpenAI

from ..config import Config


class AIConfigurationError(RuntimeError):
    """Raised when an AI feature is used without an API key."""


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    if not Config.OPENAI_API_KEY:
        raise AIConfigurationError("OPENAI_API_KEY is required for OpenAI-backed features")
    # Retries are handled by our own backoff so the 1s/2s/4s schedule holds.
    return OpenAI(api_key=Config.OPENAI_API_KEY, max_retries=0)


def chat_model() -> str:
    return Config.OPENAI_MODEL
