"""LLM configuration for the Tier-2 validator.

Provides factory functions for the primary (OpenAI-compatible) model and the
optional OpenRouter fallback. Validation calls want deterministic JSON, so
both are created with a low temperature and a bounded reply length.
"""

from __future__ import annotations

import logging
import os

from crewai import LLM


logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

VALIDATION_TEMPERATURE = 0.1
VALIDATION_MAX_TOKENS = 800


def create_primary_llm(timeout: float | None = None) -> LLM:
    """Create the primary LLM from OPENAI_* environment variables.

    Returns:
        LLM configured with OPENAI_BASE_URL, OPENAI_API_KEY, OPENAI_MODEL_NAME.

    Raises:
        ValueError: If required env vars are missing.
    """
    base_url = os.getenv("OPENAI_BASE_URL", "")
    api_key = os.getenv("OPENAI_API_KEY", "")
    model_name = os.getenv("OPENAI_MODEL_NAME", "")

    if not api_key:
        raise ValueError("OPENAI_API_KEY is not set")
    if not model_name:
        raise ValueError("OPENAI_MODEL_NAME is not set")

    kwargs: dict = {
        "model": model_name,
        "api_key": api_key,
        "temperature": VALIDATION_TEMPERATURE,
        "max_tokens": VALIDATION_MAX_TOKENS,
    }
    if base_url:
        kwargs["base_url"] = base_url
    if timeout is not None:
        kwargs["timeout"] = timeout

    logger.info("Validation LLM: model=%s base_url=%s", model_name, base_url or "(default)")
    return LLM(**kwargs)


def create_openrouter_llm(timeout: float | None = None) -> LLM | None:
    """Create an OpenRouter fallback LLM if configured.

    Reads OPENROUTER_API_KEY and OPENROUTER_MODEL_NAME from env.

    Returns:
        LLM instance or None if not configured.
    """
    api_key = os.getenv("OPENROUTER_API_KEY", "")
    model_name = os.getenv("OPENROUTER_MODEL_NAME", "")

    if not api_key or not model_name:
        logger.info("OpenRouter fallback not configured (missing OPENROUTER_API_KEY or OPENROUTER_MODEL_NAME)")
        return None

    full_model = model_name if model_name.startswith("openrouter/") else f"openrouter/{model_name}"

    kwargs: dict = {
        "model": full_model,
        "base_url": OPENROUTER_BASE_URL,
        "api_key": api_key,
        "temperature": VALIDATION_TEMPERATURE,
        "max_tokens": VALIDATION_MAX_TOKENS,
    }
    if timeout is not None:
        kwargs["timeout"] = timeout

    logger.info("OpenRouter fallback LLM: model=%s", full_model)
    return LLM(**kwargs)


def get_available_llms(timeout: float | None = None) -> list[tuple[str, LLM]]:
    """Return a list of (label, LLM) for all configured LLMs.

    The primary LLM is always first. OpenRouter is appended if configured.
    Entries with missing configuration are skipped.
    """
    llms: list[tuple[str, LLM]] = []

    try:
        llms.append(("primary", create_primary_llm(timeout=timeout)))
    except ValueError as e:
        logger.warning("Primary LLM not available: %s", e)

    openrouter = create_openrouter_llm(timeout=timeout)
    if openrouter is not None:
        llms.append(("openrouter", openrouter))

    return llms
