"""LLM provider adapters.

Two concrete implementations of ILLMProvider (linkforge/interfaces/llm_provider.py):
    - AnthropicLLMProvider -- Claude via the Anthropic Messages API
    - OllamaLLMProvider    -- local models via Ollama's OpenAI-compatible endpoint

Only the link categoriser uses an LLM, and only when CATEGORIZATION_ENABLED
is set.  main.py picks Anthropic when ANTHROPIC_API_KEY is present, else Ollama.
"""
