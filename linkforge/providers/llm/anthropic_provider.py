"""Anthropic LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`
for link categorisation and question answering.

Differences from the Ollama adapter:
    - Uses Anthropic's Messages API rather than a local ``/api/chat``
    - The system prompt is a top-level parameter, not a message in the list
    - The response is a list of content blocks (text, tool_use, ...), so
      only the text blocks are kept and joined
    - Token usage is reported by the API and logged per call
"""

from __future__ import annotations

# The official Anthropic Python SDK (async client).
import anthropic
import structlog

from linkforge.interfaces.llm_provider import ILLMProvider
from linkforge.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)

# Overridden by ANTHROPIC_MODEL.
_DEFAULT_MODEL = "claude-sonnet-4-5"


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by the Anthropic Claude API.

    Parameters
    ----------
    api_key:
        ``ANTHROPIC_API_KEY``.  An empty key makes :meth:`is_available`
        return ``False``; the client is still built, and calls fail with
        :class:`LLMError`.
    model:
        Model identifier passed to every request.
    client:
        Pre-built client, for tests.
    """

    def __init__(
        self,
        api_key: str,
        model: str = _DEFAULT_MODEL,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        # AsyncAnthropic: every call returns a coroutine.
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1500,
    ) -> str:
        """Generate a text completion via the Anthropic Messages API."""
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                # Anthropic takes the system prompt as its own kwarg.
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as exc:
            # Every SDK failure, rate limits included, becomes an LLMError;
            # the caller decides whether to try again.
            raise LLMError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        # Plain completions normally carry exactly one text block.
        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return "\n".join(text_blocks)

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        """Return ``True`` if an Anthropic API key is configured."""
        return bool(self._api_key)
