"""LLM client creation factory.

This module provides a centralized way to create the async OpenAI-compatible client
used for OpenRouter, so API keys, base URLs, attribution headers and timeouts are
configured consistently.
"""

import os
from typing import Any, Dict, Optional

from loguru import logger
from openai import AsyncOpenAI

from realmsync.utils.config import OPENROUTER_BASE_URL


def create_openrouter_client(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    max_retries: int = 0,
    app_url: Optional[str] = None,
    app_title: Optional[str] = None,
    **kwargs: Any,
) -> AsyncOpenAI:
    """Create and configure an async OpenRouter client.

    Args:
        api_key: The API key. If None, falls back to OPENROUTER_API_KEY.
        base_url: The base URL. If None, falls back to OPENROUTER_BASE_URL, then the public endpoint.
        timeout: Request timeout in seconds.
        max_retries: Number of SDK-level retries (the pipeline itself never retries).
        app_url: Sent as ``HTTP-Referer`` for OpenRouter attribution.
        app_title: Sent as ``X-Title`` for OpenRouter attribution.
        **kwargs: Additional arguments to pass to the AsyncOpenAI constructor.

    Returns:
        Configured AsyncOpenAI client.
    """
    final_api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    final_base_url = base_url or os.getenv("OPENROUTER_BASE_URL") or OPENROUTER_BASE_URL

    headers: Dict[str, str] = dict(kwargs.pop("default_headers", None) or {})
    if app_url:
        headers["HTTP-Referer"] = app_url
    if app_title:
        headers["X-Title"] = app_title

    # Log configuration (masking key)
    masked_key = (
        f"{final_api_key[:4]}...{final_api_key[-4:]}" if final_api_key and len(final_api_key) > 8 else "None"
    )
    logger.debug(
        f"Creating OpenRouter client: base_url={final_base_url}, "
        f"api_key={masked_key}, timeout={timeout}"
    )

    return AsyncOpenAI(
        api_key=final_api_key,
        base_url=final_base_url,
        timeout=timeout,
        max_retries=max_retries,
        default_headers=headers or None,
        **kwargs,
    )
