"""Helpers for configuring the OpenAI client."""

from typing import Optional

from openai import AsyncOpenAI


def build_openai_client(
    api_key: str,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> AsyncOpenAI:
    """Create a configured AsyncOpenAI client.

    Retries are disabled here because the question service applies its own
    fallback-model policy.
    """
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
