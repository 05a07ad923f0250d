"""
Text-completion service access.

Wraps the Anthropic Messages API behind a small async interface and holds
the pool of interchangeable credentials used for parallel batch scoring.
"""
import json
import re
from typing import Any, Optional, Protocol, Sequence

import anthropic
import structlog

from grantmatch.core.config import Settings, settings
from grantmatch.core.exceptions import CompletionError, CompletionNotConfiguredError, ResponseShapeError

logger = structlog.get_logger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "too many requests")


class CompletionClient(Protocol):
    """A text-completion service that answers with JSON text."""

    label: str

    async def complete_json(self, prompt: str, system: Optional[str] = None) -> str:
        ...


def is_rate_limit_error(exc: BaseException) -> bool:
    """Detect rate-limit-class failures by type, status code or message."""
    if isinstance(exc, anthropic.RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences wrapped around a JSON payload."""
    text = text.strip()
    if text.startswith("```"):
        match = _CODE_FENCE_RE.search(text)
        if match:
            return match.group(1).strip()
    return text


def load_json(text: str) -> Any:
    """Parse completion text as JSON, raising ResponseShapeError on failure."""
    try:
        return json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise ResponseShapeError(f"Completion was not valid JSON: {e}") from e


class AnthropicCompletionClient:
    """Completion client backed by one Anthropic API key."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.1,
        label: str = "key-1",
    ):
        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.label = label

    async def complete_json(self, prompt: str, system: Optional[str] = None) -> str:
        """
        Request a JSON-only completion.

        Raises:
            CompletionError: On any API failure; retryable for rate limits.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            retryable = is_rate_limit_error(e) or isinstance(e, anthropic.APIConnectionError)
            raise CompletionError(f"Anthropic API error: {e}", retryable=retryable) from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")
        if not text.strip():
            raise ResponseShapeError("Completion was empty")
        return text


class CompletionPool:
    """
    Read-only pool of interchangeable completion clients.

    Batch i is served by client (i mod pool size), so the degree of
    parallel dispatch is set by how many credentials are configured.
    """

    def __init__(self, clients: Sequence[CompletionClient]):
        if not clients:
            raise CompletionNotConfiguredError("At least one completion credential must be configured")
        self._clients = tuple(clients)

    def __len__(self) -> int:
        return len(self._clients)

    def client_for(self, batch_index: int) -> CompletionClient:
        return self._clients[batch_index % len(self._clients)]

    @property
    def primary(self) -> CompletionClient:
        return self._clients[0]

    @classmethod
    def from_settings(cls, config: Settings = settings, model: Optional[str] = None) -> "CompletionPool":
        """Build one Anthropic client per configured API key."""
        keys = config.scoring_api_keys
        if not keys:
            raise CompletionNotConfiguredError("ANTHROPIC_API_KEY is not set")

        clients = [
            AnthropicCompletionClient(
                api_key=key,
                model=model or config.scoring_model,
                max_tokens=config.llm_max_tokens,
                temperature=config.llm_temperature,
                label=f"key-{i + 1}",
            )
            for i, key in enumerate(keys)
        ]
        logger.info("completion_pool_initialized", credentials=len(clients), model=model or config.scoring_model)
        return cls(clients)
