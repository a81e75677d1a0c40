"""Vision client — chart image + prompt in, free-form analysis text out.

Wraps the Anthropic and Google Vertex APIs behind the reasoning-service
contract the cascade engine consumes. Tracks token usage and costs in memory.
Transport errors are retried here and, once retries are exhausted, raised to
the caller unchanged.
"""

from __future__ import annotations

import asyncio
import base64
import mimetypes
import re
from pathlib import Path
from typing import Any

import anthropic
import structlog

from src.cascade.models import ReasoningServiceError
from src.shell.config import AIConfig

log = structlog.get_logger()

# Cost per million tokens (approximate, as of 2025)
MODEL_COSTS = {
    "claude-opus-4-6": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-5-20250929": {"input": 3.0, "output": 15.0},
    "claude-haiku-4-5-20251001": {"input": 1.0, "output": 5.0},
}

TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)
_TRANSIENT_MESSAGE_RE = re.compile(
    r"\b(?:timeout|timed out|overloaded|rate limit(?:ed)?|connection|429|500|502|503|529)\b",
    re.IGNORECASE,
)

_DATA_URI_RE = re.compile(r"^data:(image/[a-z+]+);base64,", re.IGNORECASE)
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=\s]+$")


def image_content_block(image: str) -> dict[str, Any]:
    """Build the Anthropic image block for a chart reference.

    http(s) URLs are passed by reference; data URIs, local files and bare
    base64 payloads are sent inline.
    """
    if image.startswith(("http://", "https://")):
        return {"type": "image", "source": {"type": "url", "url": image}}

    match = _DATA_URI_RE.match(image)
    if match:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": match.group(1).lower(), "data": image[match.end():]},
        }

    path = Path(image)
    if len(image) < 4096 and path.is_file():
        media_type = mimetypes.guess_type(path.name)[0] or "image/png"
        data = base64.standard_b64encode(path.read_bytes()).decode("ascii")
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}

    if len(image) >= 64 and _BASE64_RE.match(image):
        return {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": image.strip()}}

    raise ValueError(f"Unrecognized chart reference: {image[:60]!r}")


def is_transient(error: Exception) -> bool:
    """Whether a failed request is worth retrying.

    Typed SDK errors are judged by class; a status error that is not a rate
    limit or a 5xx is permanent. Untyped errors fall back to message matching.
    """
    if isinstance(error, TRANSIENT_ERRORS):
        return True
    if isinstance(error, anthropic.APIError):
        return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    return bool(_TRANSIENT_MESSAGE_RE.search(str(error)))


class VisionClient:
    """Anthropic vision client implementing the reasoning-service contract."""

    def __init__(self, config: AIConfig, max_retries: int = 3) -> None:
        self._config = config
        self._client = None
        self._max_retries = max_retries
        self._daily_tokens_used: int = 0
        self._daily_cost_usd: float = 0.0

    async def initialize(self) -> None:
        """Initialize the appropriate API client."""
        if self._config.provider == "vertex":
            from anthropic import AsyncAnthropicVertex
            self._client = AsyncAnthropicVertex(
                project_id=self._config.vertex_project_id,
                region=self._config.vertex_region,
                timeout=self._config.timeout_seconds,
            )
            log.info("ai.initialized", provider="vertex",
                     project=self._config.vertex_project_id, region=self._config.vertex_region)
        else:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(
                api_key=self._config.anthropic_api_key or None,
                timeout=self._config.timeout_seconds,
            )
            log.info("ai.initialized", provider="anthropic", model=self._config.model)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    @property
    def tokens_remaining(self) -> int:
        return max(0, self._config.daily_token_limit - self._daily_tokens_used)

    def reset_daily_tokens(self) -> None:
        self._daily_tokens_used = 0
        self._daily_cost_usd = 0.0

    async def analyze_image(
        self,
        image: str,
        prompt: str,
        *,
        system_prompt: str | None = None,
        temperature: float | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send a chart image and prompt to Claude and return the response text.

        Raises:
            RuntimeError: client not initialized or daily token budget spent.
            ReasoningServiceError: the response carried no text block.
            anthropic.APIError: transport failure after retries.
        """
        if self._client is None:
            raise RuntimeError("Vision client not initialized — call initialize() first")

        model = model or self._config.model

        if self._daily_tokens_used >= self._config.daily_token_limit:
            log.warning("ai.daily_limit_reached", used=self._daily_tokens_used,
                        limit=self._config.daily_token_limit)
            raise RuntimeError("Daily token limit reached")

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens or self._config.max_tokens,
            "messages": [{
                "role": "user",
                "content": [image_content_block(image), {"type": "text", "text": prompt}],
            }],
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if system_prompt:
            kwargs["system"] = system_prompt

        # Retry with exponential backoff for transient errors
        for attempt in range(self._max_retries):
            try:
                response = await self._client.messages.create(**kwargs)
                break
            except Exception as e:
                if not is_transient(e) or attempt == self._max_retries - 1:
                    raise
                wait = 2 ** attempt  # 1s, 2s, 4s
                log.warning("ai.retry", attempt=attempt + 1, error=str(e), wait=wait)
                await asyncio.sleep(wait)

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not text:
            raise ReasoningServiceError("No text response from vision model")

        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        self._daily_tokens_used += input_tokens + output_tokens

        costs = MODEL_COSTS.get(model, {"input": 3.0, "output": 15.0})
        cost = (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000
        self._daily_cost_usd += cost

        log.info("ai.response", model=model, input_tokens=input_tokens,
                 output_tokens=output_tokens, cost=f"${cost:.4f}")

        return text

    def get_daily_usage(self) -> dict:
        """Today's token usage summary."""
        return {
            "used": self._daily_tokens_used,
            "daily_limit": self._config.daily_token_limit,
            "remaining": self.tokens_remaining,
            "total_cost": round(self._daily_cost_usd, 6),
        }
