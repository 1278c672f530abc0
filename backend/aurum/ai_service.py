"""
AI Service Module

Thin async wrapper over the Anthropic and OpenAI SDKs for the advisory
service. Clients are built per request from configured keys; the SDKs are
imported lazily so a deployment without advisory never loads them.
"""

import logging
from typing import Optional

from aurum.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}

ADVISORY_SYSTEM_PROMPT = (
    "You advise a human trader on position sizing. Your answer is a suggestion "
    "only and is never executed automatically. Follow the requested output format."
)
MAX_RESPONSE_TOKENS = 1024


def _api_key(provider: str) -> str:
    if provider == "anthropic":
        return settings.anthropic_api_key
    if provider == "openai":
        return settings.openai_api_key
    raise ValueError(f"Unsupported AI provider: {provider}")


def get_ai_client(provider: str = "anthropic", timeout: Optional[float] = None):
    """
    Build an async client for the provider.

    Raises:
        ValueError: unknown provider or no API key configured
    """
    provider = provider.lower()
    api_key = _api_key(provider)
    if not api_key:
        raise ValueError(f"No API key configured for provider: {provider}")

    timeout = timeout or settings.advisory_timeout_seconds
    if provider == "anthropic":
        from anthropic import AsyncAnthropic
        return AsyncAnthropic(api_key=api_key, timeout=timeout)

    from openai import AsyncOpenAI
    return AsyncOpenAI(api_key=api_key, timeout=timeout)


async def get_ai_analysis(
    client,
    provider: str,
    prompt: str,
    model: Optional[str] = None,
) -> str:
    """
    Send one prompt and return the answer text.

    Raises:
        ValueError: unknown provider or an empty answer
    """
    provider = provider.lower()
    model = model or DEFAULT_MODELS.get(provider)

    if provider == "anthropic":
        response = await client.messages.create(
            model=model,
            max_tokens=MAX_RESPONSE_TOKENS,
            system=ADVISORY_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        # Content is a list of blocks; keep the text ones
        parts = [getattr(block, "text", None) for block in response.content]
        text = "\n".join(p for p in parts if isinstance(p, str))
    elif provider == "openai":
        response = await client.chat.completions.create(
            model=model,
            max_tokens=MAX_RESPONSE_TOKENS,
            messages=[
                {"role": "system", "content": ADVISORY_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
        text = response.choices[0].message.content if response.choices else None
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")

    if not text or not text.strip():
        raise ValueError(f"Empty response from {provider} ({model})")
    logger.debug(f"Advisory answer from {provider} ({model}): {len(text)} chars")
    return text.strip()
