"""Claude-backed text completion for memory extraction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


async def complete_text(
    client: anthropic.AsyncAnthropic,
    prompt: str,
    *,
    model: str,
    max_tokens: int = 1024,
) -> str:
    """Single-shot Claude call. Returns the first text block, or "" if none."""
    kwargs: dict[str, Any] = {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    response = await client.messages.create(**kwargs)
    for block in response.content:
        if block.type == "text":
            return block.text
    logger.warning("Claude response had no text block (model %s)", model)
    return ""


def make_anthropic_extractor(
    api_key: str,
    model: str = "claude-haiku-4-5",
    max_tokens: int = 1024,
    *,
    client: anthropic.AsyncAnthropic | None = None,
) -> Callable[[str], Awaitable[str]]:
    """Build an ``extract_fn`` for :meth:`MemoryManager.capture_from_conversation`.

    The Anthropic client is created once and shared by every call.
    """
    shared = client or anthropic.AsyncAnthropic(api_key=api_key)

    async def extract(prompt: str) -> str:
        return await complete_text(shared, prompt, model=model, max_tokens=max_tokens)

    return extract
