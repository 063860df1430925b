"""Cloud LLM client abstraction (OpenAI-compatible).

Provides ``create_llm`` — a config-driven factory that returns a
``BaseChatModel`` based on the ``LLMConfig`` from application settings.

Both supported providers go through ``ChatOpenAI``: **openai** talks to
the default OpenAI endpoint, **gemini** to Google's OpenAI-compatible
endpoint.  The ``mock`` provider has no chat model; the problem writer
handles it without calling this factory.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_openai import ChatOpenAI

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from src.config import LLMConfig

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
"""Google's OpenAI-compatible endpoint for Gemini models."""


def create_llm(config: LLMConfig) -> BaseChatModel:
    """Create a ``BaseChatModel`` from application LLM configuration.

    Args:
        config: Validated ``LLMConfig`` from ``load_settings().llm``.

    Returns:
        A configured ``BaseChatModel`` instance ready for ``ainvoke``.

    Raises:
        ValueError: If the provider has no chat model (``mock``) or is
            not supported.
    """
    provider = config.provider.lower()

    if provider in ("openai", "gemini"):
        kwargs: dict = {
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
        }
        if config.api_key:
            kwargs["api_key"] = config.api_key

        base_url = config.base_url
        if base_url is None and provider == "gemini":
            base_url = GEMINI_OPENAI_BASE_URL
        if base_url:
            kwargs["base_url"] = base_url

        llm = ChatOpenAI(**kwargs)
        logger.info(
            "Created ChatOpenAI (provider=%s, model=%s, temperature=%.2f)",
            provider,
            config.model,
            config.temperature,
        )
        return llm

    raise ValueError(
        f"Unsupported LLM provider: {provider!r}. Supported: openai, gemini"
    )
