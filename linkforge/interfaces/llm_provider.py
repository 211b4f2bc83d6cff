"""Abstract base class for LLM service providers.

Used by the link categoriser and the question-answering service.
Implementations wrap the Anthropic API or a local Ollama server; callers
stay provider-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OllamaLLMProvider
# Located in: linkforge/providers/llm/
class ILLMProvider(ABC):
    """Contract for plain text-completion services."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1500,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The instruction message that sets the model's behaviour.
        user_prompt:
            The request itself, including the content to judge.
        temperature:
            Sampling temperature.
        max_tokens:
            Upper bound on the response length.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        LLMError
            If the API call fails or returns no text.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"anthropic"`` or ``"ollama"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Checks credentials or endpoint settings without an inference call.
        """
