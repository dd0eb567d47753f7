"""
Growth Coach — Claude completion client.
Wraps the Messages API with the rate-limit retry policy:
  - 429 → wait (server retry-after hint, else base_delay * 2^attempt) and retry
  - 429 on the final attempt → re-raise
  - anything else → raise immediately, no retry
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

import anthropic

from config.settings import config
from config.errors import ConfigurationError

logger = logging.getLogger("coach.claude")


@dataclass
class CompletionResult:
    """What the completion endpoint hands back to callers."""
    content: str
    model: str
    finish_reason: Optional[str] = None
    usage: dict = field(default_factory=dict)


def split_system_messages(messages: List[dict]) -> Tuple[str, List[dict]]:
    """Messages API takes the system prompt separately from the chat turns."""
    system_parts = []
    chat = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            system_parts.append(content)
        else:
            chat.append({"role": role, "content": content})
    return "\n\n".join(system_parts), chat


def retry_after_seconds(error: anthropic.APIStatusError) -> Optional[float]:
    """Numeric retry-after header from a 429, if the server sent one."""
    raw = error.response.headers.get("retry-after") if error.response is not None else None
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _extract_text(response) -> str:
    parts = [block.text for block in (response.content or []) if getattr(block, "type", None) == "text"]
    if not parts:
        return "No response generated"
    return "".join(parts)


class CompletionClient:
    """Claude Messages API with the coach's retry discipline."""

    def __init__(self, api_key: str = None, claude=None,
                 max_retries: int = None, retry_base_delay: float = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._api_key = config.claude.api_key if api_key is None else api_key
        self._claude = claude
        self._max_retries = max_retries if max_retries is not None else config.claude.max_retries
        if self._max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else config.claude.retry_base_delay
        )
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return self._claude is not None or bool(self._api_key)

    def _get_claude(self):
        if self._claude is None:
            if not self._api_key:
                raise ConfigurationError("Anthropic API key not configured")
            # SDK retries off: the policy below is the only one in force
            self._claude = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                max_retries=0,
                timeout=config.claude.timeout,
            )
        return self._claude

    async def _create_with_retry(self, **kwargs):
        claude = self._get_claude()
        attempt = 1
        while True:
            try:
                return await claude.messages.create(**kwargs)
            except anthropic.RateLimitError as e:
                if attempt >= self._max_retries:
                    logger.error(f"Claude 429 rate limited — giving up after {attempt} attempts")
                    raise
                wait = retry_after_seconds(e)
                if wait is None:
                    wait = self._retry_base_delay * (2 ** attempt)
                logger.warning(
                    f"Claude 429 rate limited — waiting {wait:.1f}s "
                    f"(attempt {attempt}/{self._max_retries})"
                )
                await self._sleep(wait)
                attempt += 1

    async def complete(self, messages: List[dict], model: str = None,
                       max_tokens: int = None, temperature: float = None) -> CompletionResult:
        """Send role-tagged messages and return the generated text plus usage."""
        system, chat = split_system_messages(messages)
        if not chat:
            raise ValueError("At least one user or assistant message is required")

        model = model or config.claude.model
        kwargs = {
            "model": model,
            "max_tokens": max_tokens or config.claude.max_tokens,
            "temperature": config.claude.temperature if temperature is None else temperature,
            "messages": chat,
        }
        if system:
            kwargs["system"] = system

        logger.info(f"Calling Claude API: model={model}, {len(chat)} message(s)")
        response = await self._create_with_retry(**kwargs)

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }
            logger.info(f"Claude responded: {usage['input_tokens']} in, {usage['output_tokens']} out")

        return CompletionResult(
            content=_extract_text(response),
            model=getattr(response, "model", model),
            finish_reason=getattr(response, "stop_reason", None),
            usage=usage,
        )
